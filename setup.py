from setuptools import setup, find_packages

setup(
    name="pacsource",
    version="0.1.0",
    description="pacman front end with AUR dependency resolution.",
    author="pacsource developers",
    license="GPL-3.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pacsource=pacsource.modules.cli:main",
        ],
    },
)
