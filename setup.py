"""
ABLedger: A differential-testing state store for smart-contract runtimes

ABLedger records, per block, the execution state produced by replaying the same chain
under several contract runtimes (an interpreter and a compiled bytecode backend), and
detects divergences between them after the fact.
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

with open("requirements.txt", "r", encoding="utf-8") as fh:
    requirements = [line.strip() for line in fh.readlines() if line.strip() and not line.startswith("#")]

# Get version from the package
import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '.'))
from abledger.units.version import get_version
from abledger import VERSION

setup(
    name="ABLedger",
    version=get_version(VERSION),
    description="A differential-testing state store for smart-contract runtimes",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=['abledger', 'abledger.*'], exclude=['tests*']),
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "abl=abledger.cli:abl",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 2 - Pre-Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Testing",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    keywords="blockchain, differential testing, smart contracts, state store",
)
