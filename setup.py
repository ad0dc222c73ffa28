from setuptools import find_packages, setup

setup(
    name="tracegraph",
    version="0.1.0",
    description="Tensor graph builder: lazy graph IR -> optimized, scheduled traces",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.10",
    install_requires=[
        "numpy>=1.24",
    ],
    extras_require={
        "dev": [
            "pytest>=7",
        ],
    },
    zip_safe=False,
)
