# Copyright (c) 2025 adcl.io
# All Rights Reserved.
#
# This software is proprietary and confidential. Unauthorized copying,
# distribution, or use of this software is strictly prohibited.

"""
Setup configuration for the hookflow workflow execution engine
"""

from setuptools import setup, find_packages

setup(
    name="hookflow",
    version="1.0.0",
    description="Event-triggered workflow execution engine with sandboxed templating and SSRF-safe egress",
    author="Jason Cafarelli",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "httpx>=0.25.0",
        "pyyaml>=6.0",
        "aiofiles>=23.0.0",
        "croniter>=2.0.0",
        "jmespath>=1.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "asyncpg>=0.29.0",
        "openai>=1.30.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ]
    },
)
