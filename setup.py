from setuptools import find_packages, setup

setup(
    name='crashbridge',
    version='1.0.0',
    description='Crash enrichment and delivery bridge for the STM32WB55 garage intrusion sensor',
    packages=find_packages(include=['crashbridge', 'crashbridge.*']),
    python_requires='>=3.12',
    install_requires=[
        'aiomqtt>=2.0',
        'marshmallow>=3.13',
        'msgspec>=0.18',
        'paho-mqtt>=2.0',
        'psutil',
        'python-dotenv>=1.0',
        'tenacity>=8.2',
        'transitions>=0.9',
        'uvloop>=0.19',
    ],
    extras_require={
        'tests': [
            'pytest>=8',
            'pytest-asyncio>=0.23',
        ],
    },
    entry_points={
        'console_scripts': [
            'crashbridge=crashbridge.daemon:main',
        ],
    },
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: POSIX :: Linux',
    ],
)
