# Welcome to the mvgeom setup.py.
import sys

if sys.version_info < (3, 9, 0):
    raise RuntimeError("mvgeom requires Python 3.9.0 or later.")


from setuptools import find_packages, setup

setup(
    name='mvgeom',
    version='0.1.0',
    description='Multiple view geometry estimators, refiners and bundle adjustment in PyTorch',
    license='Apache License 2.0',
    python_requires='>=3.9',
    packages=find_packages(include=['mvgeom', 'mvgeom.*']),
    install_requires=['packaging', 'torch>=1.13', 'typing_extensions'],
    tests_require=['pytest'],
    extras_require={
        'dev': [
            'mypy[reports]',
            'pre-commit>=2.0',
            'pydocstyle',
            'pytest',
            'pytest-cov',
        ],
        'test': ['pytest'],
    },
)
