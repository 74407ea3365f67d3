#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Setup script for the ERC Intake pipeline.
"""

from pathlib import Path

from setuptools import find_packages, setup

VERSION = "1.0.0"

readme_file = Path(__file__).parent / "README.md"
if readme_file.exists():
    long_description = readme_file.read_text(encoding="utf-8")
else:
    long_description = "ERC workbook intake: extraction, canonical records, exports and batch runs"

setup(
    name="erc-intake",
    version=VERSION,
    description="Employee Retention Credit workbook intake pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires=">=3.9",
    packages=find_packages(include=["erc_intake", "erc_intake.*"]),
    install_requires=[
        "pydantic>=2.0",
        "openpyxl>=3.1",
        "xlrd>=2.0",
        "chardet>=5.0",
        "prometheus_client>=0.17",
        "typer>=0.9",
        "rich>=13.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "erc-intake=erc_intake.cli:app",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
