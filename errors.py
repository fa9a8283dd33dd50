# -*- coding: utf-8 -*-
"""Exceptions raised synchronously to the caller.

Numerical trouble inside an iteration is *not* modelled here: the solve loop
catches it and reports a boolean outcome instead.
"""


class ConfigurationError(ValueError):
    """Invalid settings, horizon, selector or missing collaborator."""


class InputShapeError(ValueError):
    """Initial guess or controller has the wrong length."""
