from setuptools import setup, find_packages

setup(
    name="seqforge",
    version="0.1.0",
    description="Compile declarative auditory paradigms into sample-accurate audio and trigger sequences",
    author="SeqForge Contributors",
    license="MIT",
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.8",
    install_requires=[
        "torch>=1.12.0",
        "numpy>=1.21.0",
        "scipy>=1.7.0",
        "PyYAML>=6.0",
        "tqdm>=4.60",
        "h5py>=3.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=3.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
)
