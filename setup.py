from setuptools import setup, find_namespace_packages

setup(
    name="gcloud-read-gate",
    version="0.1.0",
    description="gcloud read gate — read-only safety gate for gcloud commands and BigQuery/Spanner SQL",
    author="gcloud read gate",
    python_requires=">=3.9",
    packages=find_namespace_packages(include=["readgate", "readgate.*", "cloudread", "cloudread.*"]),
    py_modules=["gcloud_read_gate"],
    install_requires=[
        "pyyaml>=6.0",
        "pydantic>=2.0",
    ],
    extras_require={
        "gcp": [
            "google-cloud-bigquery>=3.11.0",
            "google-cloud-spanner>=3.40.0",
        ],
        "dev": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "gcloud-read-gate=gcloud_read_gate:main",
        ],
    },
)
