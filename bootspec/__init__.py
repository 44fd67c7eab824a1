# Copyright Red Hat
#
# bootspec/__init__.py - Bootspec package initialisation
#
# This file is part of the bootspec project.
#
# SPDX-License-Identifier: GPL-2.0-only
"""This module provides classes and functions for discovering,
interpreting, and selecting boot loader entries complying with the
Boot Loader Specification, and for locating and verifying the EFI
System Partition (ESP) that holds them.

The ``bootspec`` package contains global definitions, functions to
configure the bootspec environment, logging infrastructure for the
package, and the generic ``key value`` line parser and version string
comparison shared by the sub-modules.

Individual sub-modules provide interfaces to the various components of
bootspec: boot loader entries and default entry selection, the loader
configuration, EFI boot loader variables, container detection, and ESP
verification.

See the sub-module documentation for specific information on the
classes and interfaces provided.
"""
from ._bootspec import *
from ._bootspec import __all__

__version__ = "1.0.0"
# vim: set et ts=4 sw=4 :
