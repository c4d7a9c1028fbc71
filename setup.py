"""Setup configuration for the Modrelay moderation gateway."""

from setuptools import setup, find_packages

setup(
    name="modrelay",
    version="0.0.1",
    description="Anonymous reply moderation gateway: pseudonymous handles, review queue and ban cases",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "aiosqlite>=0.19",
        "PyYAML>=6.0",
        "python-dotenv>=1.0",
        "prompt_toolkit>=3.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "modrelay=modrelay.main:main",
        ],
    },
)
