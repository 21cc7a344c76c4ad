#!/usr/bin/env python3

import setuptools

setuptools.setup(
    name='polycheck',
    version='0.1.0',
    description='Verify Polygon-style problem packages for programming contests',
    long_description='Generates and validates the tests of a problem package, checks its checker, '
    'and runs every solution to confirm that it behaves the way its tag says.',
    python_requires='>=3.11',
    # polycheck itself is a namespace package (no __init__.py), so use the namespace-aware finder.
    packages=setuptools.find_namespace_packages(include=['polycheck', 'polycheck.*'],
                                                exclude=['polycheck.tests*']),
    package_data={
        'polycheck': ['config/*.yaml'],
    },
    install_requires=[
        'PyYAML',
        'colorlog',
        'pydantic>=2',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'verifypackage=polycheck.verifypackage:main',
        ],
    },
)
