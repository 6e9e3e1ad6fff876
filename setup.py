"""Setup configuration for pympmap package"""

from setuptools import setup, find_packages

setup(
    name="pympmap",
    version="0.1.0",
    author="pympmap Development Team",
    description="Founder-origin probabilities for multi-parent recombinant inbred line populations with Numba JIT acceleration",
    long_description=open("README.md").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.19.0",
        "pandas>=1.2.0",
        "h5py>=3.0.0",
        "tqdm>=4.60.0",
        "numba>=0.50.0",
        "joblib>=1.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=6.0",
        ],
    },
    scripts=["scripts/run_mpprob.py"],
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Topic :: Scientific/Engineering :: Bio-Informatics",
    ],
)
