"""
Gather schema definitions

Any schema has a base name and any of the following extended names:
 * ``Creation`` to create a new instance of that schema
 * ``Patch`` to modify an existing instance of that schema
For example, there are three classes to represent events:
``Event``, ``EventCreation`` and ``EventPatch``

A patch has optional fields only. Any field of the original model
that should not be affected by some proposed change can therefore
just be omitted with a patch. The ID of the affected object is part
of the request path instead of the patch body.

This package also contains the ``config`` module, but it's not
exported by default, since it's currently only used internally.
"""

from .bases import *
from .errors import *
from .extra import *
