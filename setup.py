"""Setup configuration for the bizzin-jobs package."""
from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="bizzin-jobs",
    version="0.1.0",
    author="Bizzin Contributors",
    description="Background email queue and subscription grace periods for Bizzin",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"bizzin_jobs": ["templates/*.html"]},
    include_package_data=True,
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
        "Development Status :: 3 - Alpha",
        "Framework :: AsyncIO",
    ],
    python_requires=">=3.9",
    install_requires=[
        "asyncpg>=0.27.0",
        "pydantic>=2.0.0",
        "python-dateutil>=2.8.0",
        "aiohttp>=3.8.0",
        "jinja2>=3.1.0",
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.20.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
            "flake8>=6.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "bizzin-worker=bizzin_jobs.worker_main:main",
            "bizzin-scheduler=bizzin_jobs.scheduler_main:main",
            "bizzin-api=bizzin_jobs.api_main:main",
        ],
    },
)
