"""Registrant identities.

A regular employee's identity is confirmed by the staff directory; an
outsource worker declares their own name and department and gets a userid
derived from them. Both reach the allocator through the same attributes.
"""
import re
from dataclasses import dataclass

REGULAR = 'regular'
OUTSOURCE = 'outsource'

OUTSOURCE_PREFIX = 'outsource-'

_WHITESPACE = re.compile(r'\s+')


def _slug_part(value):
    return _WHITESPACE.sub('-', value.strip().lower())


def derive_outsource_userid(name, department=''):
    """``outsource-<name>[-<department>]``, lowercased, whitespace runs as hyphens."""
    name_part = _slug_part(name)
    dept_part = _slug_part(department or '')
    if dept_part:
        return f"{OUTSOURCE_PREFIX}{name_part}-{dept_part}"
    return f"{OUTSOURCE_PREFIX}{name_part}"


@dataclass(frozen=True)
class RegularIdentity:
    userid: str
    name: str
    department: str = ''
    position: str = ''

    register_type = REGULAR


@dataclass(frozen=True)
class OutsourceIdentity:
    name: str
    department: str = ''

    register_type = OUTSOURCE
    position = ''

    @property
    def userid(self):
        return derive_outsource_userid(self.name, self.department)
