import re
import os
import codecs
from os import path
from io import open
from setuptools import setup, find_packages


here = path.abspath(path.dirname(__file__))

with open(path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

with codecs.open(os.path.join(here, "mint_gateway/__init__.py"), encoding="utf-8") as init_file:
    version_match = re.search(r"^__version__ = ['\"]([^'\"]*)['\"]", init_file.read(), re.M)
    if not version_match:
        raise RuntimeError("Unable to find version string in mint_gateway/__init__.py")
    version_string = version_match.group(1)


requirements = [
    # HTTP and networking
    "httpx>=0.27.0",

    # Caching and storage
    "redis>=5.0.0",

    # Retry and resilience
    "tenacity>=8.2.0",

    # Environment and configuration
    "python-dotenv>=1.0.0",

    # Web framework
    "pydantic>=2.6.0",
    "fastapi>=0.110.0",
    "uvicorn[standard]>=0.38.0",

    # Utilities
    "click>=8.1.0",
]

test_requirements = [
    "pytest>=8.0.0",
    "pytest-cov>=4.1.0",
    "pytest-mock>=3.10.0",
    "pytest-asyncio>=0.21.0",
]

setup(
    name="mint_gateway",
    version=version_string,
    description="Puzzle-gated allocation gateway and bulk ledger loader for numbered collections",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Mint Gateway Team",
    license="MIT",
    packages=find_packages(include=["mint_gateway", "mint_gateway.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={"test": test_requirements},
    entry_points={
        "console_scripts": [
            "mint-gateway=mint_gateway.cli:main",
        ]
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3 :: Only",
        "Topic :: Internet :: WWW/HTTP",
        "Topic :: System :: Distributed Computing",
    ],
)
