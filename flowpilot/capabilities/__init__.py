"""Built-in capabilities shipped with flowpilot.

Each sub-package is a category; each module groups the functions of one
platform. Functions are registered with the ``@capability`` decorator.
"""
