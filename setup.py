import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="dcsolar",
    version="0.1.0",
    author="LBNL",
    description="Daylight coefficient based solar and infrared radiation for building simulation",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=['dcsolar'],
    package_dir={'dcsolar': 'dcsolar'},
    install_requires=[
        "numpy",
        "scipy",
    ],
    extras_require={
        "test": ["pytest"],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: BSD License",
        "Operating System :: OS Independent",
    ],
    python_requires='>=3.9',
)
