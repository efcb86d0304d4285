"""
Dual-Native schema definitions

The schemas describe the JSON documents exchanged by the REST API and
the records kept by the catalog. Field names follow the wire format,
which uses camel case for a few fields (e.g. ``updatedAt``); those are
declared as aliases, so both names are accepted during validation.

This package also contains the ``config`` module, but it's not
exported by default, since it's currently only used internally.
"""

from .catalog import *
from .conformance import *
from .errors import *
from .events import *
from .extra import *
from .resources import *
