from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="schedpool",
    version="0.1.0",
    author="Mark Brooks",
    author_email="",
    description="Local job scheduler that runs a file of shell commands on a bounded worker pool with timeouts and a free memory safety floor.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/mxflask/schedpool",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX :: Linux",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
    python_requires=">=3.10",
    install_requires=[
        "decologr",
        "psutil",
    ],
    extras_require={
        "test": ["pytest>=7.0"]
    },
    entry_points={
        "console_scripts": [
            "schedpool=schedpool.cli:main",
        ],
    },
)
