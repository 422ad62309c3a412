"""
CrudKit — HTTP Method Gate
============================

What:  Decides whether an HTTP verb may be registered for a resource.
How:   The caller-supplied allow-list maps resource names (matched
       case-insensitively) to lists of verbs. Each entry is resolved into a
       `MethodPolicy`:

           allow-list absent             → Unrestricted
           no entry for the resource     → Unrestricted
           entry is None                 → Unrestricted
           entry is [] (empty)           → Restricted(frozenset())  — deny all
           entry is ["GET", "POST"]      → Restricted({"GET", "POST"})

       Verbs are compared upper-cased, so `"get"` and `"GET"` are equivalent.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")

MethodAllowList = Mapping[str, Optional[Iterable[str]]]


@dataclass(frozen=True)
class Unrestricted:
    """Every verb is permitted."""

    def allows(self, verb: str) -> bool:
        return True


@dataclass(frozen=True)
class Restricted:
    """Only the listed verbs are permitted; an empty set permits nothing."""

    verbs: frozenset

    def allows(self, verb: str) -> bool:
        return verb.upper() in self.verbs


MethodPolicy = Union[Unrestricted, Restricted]


def resolve_policy(
    resource_name: str, allowed_methods: Optional[MethodAllowList]
) -> MethodPolicy:
    """Resolve the allow-list entry for `resource_name` into a policy."""
    if allowed_methods is None:
        return Unrestricted()

    wanted = resource_name.lower()
    key = next((k for k in allowed_methods if k.lower() == wanted), None)
    if key is None:
        return Unrestricted()

    verbs = allowed_methods[key]
    if verbs is None:
        return Unrestricted()
    if isinstance(verbs, str):
        verbs = [verbs]
    return Restricted(frozenset(v.upper() for v in verbs))


def is_method_allowed(
    resource_name: str, method: str, allowed_methods: Optional[MethodAllowList]
) -> bool:
    """
    Check if `method` is allowed for `resource_name`.

    >>> is_method_allowed("Users", "GET", {"users": ["GET"]})
    True
    >>> is_method_allowed("users", "GET", {"users": []})
    False
    """
    return resolve_policy(resource_name, allowed_methods).allows(method)
