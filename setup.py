#!/usr/bin/env python3
"""
Setup script for vmbot, an emoji chat bot for CollabVM servers
"""

from setuptools import setup, find_namespace_packages

setup(
    name="vmbot",
    version="0.0.1",
    description="Emoji chat bot speaking the CollabVM array protocol",
    packages=find_namespace_packages(include=["shared", "shared.*", "bot", "bot.*"]),
    install_requires=[
        "websockets==15.0",
        "aiohttp==3.10.10",
        "click==8.1.7",
        "typer==0.12.3",
        "rich==13.9.2",
        "PyYAML==6.0.1",
    ],
    extras_require={
        "test": [
            "pytest==8.4.2",
            "pytest-asyncio==1.2.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        'console_scripts': [
            'vmbot=bot.cli:main',
        ],
    },
)
