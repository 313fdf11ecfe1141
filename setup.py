from setuptools import find_packages, setup

setup(
    name='naoslink',
    version='0.1.0',
    description='Transport-agnostic session protocol client for fleets of NAOS devices',
    author='naoslink contributors',
    author_email='',
    packages=find_packages(include=['naoslink', 'naoslink.*']),
    python_requires='>=3.11',
    install_requires=[
        'aiomqtt>=2.0',
        'construct>=2.10',
        'marshmallow>=3.20',
        'msgspec>=0.18',
        'prometheus-client>=0.17',
        'pyserial-asyncio-fast>=0.11',
        'tenacity>=8.2',
        'transitions>=0.9',
    ],
    extras_require={
        'test': [
            'pytest>=7.4',
            'pytest-asyncio>=0.23',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
