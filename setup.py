from setuptools import setup, find_packages

setup(
    name="pyGADGETS",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "pandas",
        "numpy",
        "torch",
        "scipy",
        "tqdm",
        "pyyaml"
    ],
    extras_require={
        "test": ["pytest"]
    },
    description="Fitness scoring and permutation tests for GADGETS epistasis searches in case-parent trios",
)
