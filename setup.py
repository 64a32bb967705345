from setuptools import setup, find_packages

setup(
    name="fedtrust",
    version="0.1.0",
    description="Federation trust graph and reputation engine for agricultural data-sharing networks",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=["python-json-logger>=3.1"],
    extras_require={"dev": ["pytest>=7.0"]},
    entry_points={"console_scripts": ["fedtrust=fedtrust.cli:main"]},
    python_requires=">=3.9",
    license="CC0-1.0",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Software Development :: Libraries",
        "License :: CC0 1.0 Universal (CC0 1.0) Public Domain Dedication",
        "Programming Language :: Python :: 3",
    ],
    keywords="federation trust reputation graph scoring",
)
