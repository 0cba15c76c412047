from setuptools import find_packages, setup

setup(
    name="gedcom-sqlite-cache",
    version="1.0.0",
    packages=find_packages(include=["gedcom_cache", "gedcom_cache.*"]),
    install_requires=[line for line in open("requirements-core.txt").read().splitlines() if line],
    extras_require={"test": ["pytest>=7.0"]},
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "gedcom-cache=gedcom_cache.cli:main",
        ],
    },
)
