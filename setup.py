from setuptools import setup

description = 'Transport- and serialization-agnostic remote procedure calls'

setup(
    name='tango',
    version='0.9.0',
    description=description,
    long_description=description,
    author='tango developers',
    python_requires='>=3.9',
    packages=['tango'],
    install_requires=[
        'cbor2>=5',
        'click>=8,<9',
        'colorama<1',
        'orjson>=3,<4',
        'pyzmq>=22',
        'structlog>=22.2',
        'uvloop>=0.18',
        'PyYAML>=5',
    ],
    extras_require={
        'test': [
            'pytest>=7',
            'pytest-asyncio>=0.21',
            'pytest-mock>=3',
        ],
    },
    entry_points={
        'console_scripts': ['tango=tango.cli:main'],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Natural Language :: English',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3.9',
    ],
    package_data={
        'tango': ['py.typed'],
    },
)
