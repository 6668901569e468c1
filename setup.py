"""
Setuptools build script for termcraft.

This file allows installation of the ``termcraft`` package via
``pip install .``.  It declares the required dependencies and
registers a console script entry point named ``ai``.  When
installed, users can invoke the CLI with ``ai`` from their shell.

Install the ``test`` extra to run the test suite.
"""

from setuptools import setup, find_packages

setup(
    name="termcraft",
    version="0.1.0",
    description="AI-powered terminal assistant translating natural language to validated shell commands",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "click>=7.0",
        "PyYAML>=5.4",
        "fastapi>=0.80",
        "uvicorn>=0.20",
        "google-genai>=1.0",
        "httpx>=0.24",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "ai=termcraft.cli:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
)
