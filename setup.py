# type: ignore
from setuptools import find_packages, setup

# Get VERSION constant from flagcore.version - we can't simply import that module because
# flagcore/__init__.py imports all kinds of stuff that requires dependencies we may not have
# loaded yet. Based on https://packaging.python.org/guides/single-sourcing-package-version/
version_module_globals = {}
with open('./flagcore/version.py') as f:
    exec(f.read(), version_module_globals)
flagcore_version = version_module_globals['VERSION']


def parse_requirements(filename):
    """ load requirements from a pip requirements file """
    lineiter = (line.strip() for line in open(filename))
    return [line for line in lineiter if line and not line.startswith("#")]


install_reqs = parse_requirements('requirements.txt')
test_reqs = parse_requirements('test-requirements.txt')

# reqs is a list of requirement
# e.g. ['semver>=2.10.2,<4.0.0', 'urllib3>=1.26.0,<3']
reqs = [ir for ir in install_reqs]
testreqs = [ir for ir in test_reqs]

setup(
    name='flagcore',
    version=flagcore_version,
    packages=find_packages(include=['flagcore', 'flagcore.*']),
    description='Server-side feature flag evaluation and data synchronization core',
    long_description='Server-side feature flag evaluation and data synchronization core',
    install_requires=reqs,
    python_requires='>=3.8',
    classifiers=[
        'Intended Audience :: Developers',
        'Operating System :: OS Independent',
        'Programming Language :: Python :: 3',
        'Topic :: Software Development',
        'Topic :: Software Development :: Libraries',
    ],
    extras_require={
        "test": testreqs,
    },
)
