#!/usr/bin/env python
from setuptools import setup

from bootspec import __version__ as bootspec_version

setup(
    name='bootspec',
    version=bootspec_version,
    description=("""Boot Loader Specification entry and ESP discovery."""),
    author='Bryn M. Reeves',
    author_email='bmr@redhat.com',
    license="GPLv2",
    test_suite="tests",
    packages=['bootspec'],
    install_requires=['dbus-python'],
)


# vim: set et ts=4 sw=4 :
