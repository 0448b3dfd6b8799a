"""
Incremental query building with conditional, parameter-driven clauses.

Parameter-binding layers reject empty collections and ``None`` for ``IN``
lists, which forces callers to guard every optional filter twice: once when
concatenating the clause and once when binding its value. ``QueryBuilder``
makes that decision per appended fragment:

    handle = (
        QueryBuilder("select b from Bill b where 1=1")
        .append(" and b.status in (:statuses) ", "statuses", statuses)
        .append(" and b.knesset = :knesset ", "knesset", knesset_num)
        .finalize_managed(engine)
    )

By default (``OMIT``) a clause whose parameter is absent is dropped. With
``UNION_COMPARE`` it is kept but rewritten so that ``x in ()`` is false and
``x not in ()`` is true, as for membership in the empty set.
"""

import logging
import re
from collections.abc import Collection, Mapping
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple

from backend.query_engine import QueryEngine, QueryHandle
from config.settings import Settings

logger = logging.getLogger(__name__)

FALSE_PREDICATE = "1 = 0"
TRUE_PREDICATE = "1 = 1"
PLACEHOLDER_PREFIXES = (":", "$")

_UNSET = object()
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InclusionPolicy(Enum):
    """How ``append`` treats a clause whose parameter is absent."""
    OMIT = "omit"
    UNION_COMPARE = "union-compare"

    @classmethod
    def from_name(cls, name: str) -> "InclusionPolicy":
        """Resolve a policy from its name ("omit", "union-compare" or "union_compare")."""
        normalized = name.strip().lower().replace("_", "-")
        for policy in cls:
            if policy.value == normalized:
                return policy
        raise ValueError(
            f"Invalid policy: {name}. Allowed values: {[p.value for p in cls]}"
        )


OMIT = InclusionPolicy.OMIT
UNION_COMPARE = InclusionPolicy.UNION_COMPARE


def is_collection(value: Any) -> bool:
    """Text, bytes and mappings count as single values, not collections."""
    if isinstance(value, (str, bytes, bytearray, Mapping)):
        return False
    return isinstance(value, Collection)


def is_absent(value: Any) -> bool:
    """Check whether a parameter value means "no constraint supplied"."""
    if value is None:
        return True
    return is_collection(value) and len(value) == 0


def validate_column_name(column_name: str) -> str:
    """
    Validate a column reference used to render a clause.

    Args:
        column_name: Column name, optionally alias-qualified (e.g. ``b.StatusID``)

    Returns:
        The column name unchanged

    Raises:
        ValueError: If column name contains invalid characters
    """
    if not re.match(r'^[a-zA-Z0-9_."]+$', column_name):
        raise ValueError(f"Invalid column name: {column_name}")

    return column_name


def _membership_pattern(key: str, negated: bool) -> Pattern[str]:
    """Build the pattern for ``<identifier> [not] in (<placeholder for key>)``."""
    prefixes = "".join(re.escape(p) for p in PLACEHOLDER_PREFIXES)
    placeholder = rf"\(?\s*[{prefixes}]{re.escape(key)}(?!\w)\s*\)?"
    # the identifier starts a token: after whitespace, "(" or an operator
    lead = r"(?<![\w.:\"$])"
    if negated:
        return re.compile(rf"{lead}[\w.:\"]+\s+not\s+in\s*{placeholder}", re.IGNORECASE)
    return re.compile(rf"{lead}(?!not\s)[\w.:\"]+\s+in\s*{placeholder}", re.IGNORECASE)


def rewrite_empty_membership(fragment: str, key: str) -> Tuple[str, int]:
    """
    Replace membership tests against an empty ``key`` with tautologies.

    ``not in`` becomes ``1 = 1`` and ``in`` becomes ``1 = 0``. Whatever
    precedes the identifier (typically a connective such as ``and``) is kept.

    Returns:
        Tuple of (rewritten fragment, number of replacements made)
    """
    rewritten, negated_count = _membership_pattern(key, negated=True).subn(
        f"{TRUE_PREDICATE} ", fragment
    )
    rewritten, plain_count = _membership_pattern(key, negated=False).subn(
        f"{FALSE_PREDICATE} ", rewritten
    )
    return rewritten, negated_count + plain_count


class QueryBuilder:
    """Accumulates query text and named bindings across ``append`` calls.

    The builder is a plain mutable object meant for a single query build:
    construct, append, then finalize once. It is not thread-safe.
    """

    def __init__(self, initial_text: str = ""):
        self._parts: List[str] = [initial_text] if initial_text else []
        self._params: Dict[str, Any] = {}
        self._policy: InclusionPolicy = OMIT
        self._finalized = False

    @property
    def text(self) -> str:
        """The query text accumulated so far."""
        return "".join(self._parts)

    @property
    def parameters(self) -> Dict[str, Any]:
        """Copy of the accumulated bindings."""
        return self._params.copy()

    @property
    def policy(self) -> InclusionPolicy:
        return self._policy

    def __str__(self) -> str:
        return self.text

    def __repr__(self) -> str:
        return (
            f"QueryBuilder(text={self.text!r}, parameters={self._params!r}, "
            f"policy={self._policy.name})"
        )

    def set_policy(self, policy: InclusionPolicy) -> "QueryBuilder":
        """
        Select how later ``append`` calls treat absent parameters.

        Fragments appended earlier are not affected.

        Args:
            policy: ``OMIT`` or ``UNION_COMPARE``

        Returns:
            This builder
        """
        if not isinstance(policy, InclusionPolicy):
            raise TypeError(
                f"policy must be an InclusionPolicy, got {type(policy).__name__}"
            )
        self._warn_if_finalized()
        self._policy = policy
        return self

    def append(self, fragment: str, key: Optional[str] = None, value: Any = _UNSET) -> "QueryBuilder":
        """
        Append a fragment, conditionally when it carries a parameter.

        Called as ``append(fragment)`` the fragment is always appended and no
        binding is made. Called as ``append(fragment, key, value)``:

        - a present value (non-``None`` scalar or non-empty collection) is
          bound to ``key`` and the fragment is appended verbatim;
        - an absent value under ``OMIT`` changes nothing;
        - an absent value under ``UNION_COMPARE`` binds ``key`` and appends
          the fragment with ``<column> in (:key)`` replaced by ``1 = 0`` and
          ``<column> not in (:key)`` replaced by ``1 = 1``.

        Args:
            fragment: Query text; must reference ``key`` through a named placeholder
            key: Parameter name
            value: Parameter value

        Returns:
            This builder
        """
        if key is None and value is _UNSET:
            self._warn_if_finalized()
            self._parts.append(fragment)
            return self
        if key is None or value is _UNSET:
            raise TypeError("append() takes either a fragment alone or a fragment, key and value")

        self._warn_if_finalized()
        if not is_absent(value):
            self._bind(fragment, key, value)
        elif self._policy is UNION_COMPARE:
            rewritten, replacements = rewrite_empty_membership(fragment, key)
            if replacements == 0:
                logger.warning(
                    f"No '[not] in' test on '{key}' found in fragment {fragment!r}; appending it unchanged"
                )
            self._bind(rewritten, key, value)
        else:
            logger.debug(f"Omitting fragment for absent parameter '{key}'")
        return self

    def append_nullable(self, fragment: str, key: str, value: Any) -> "QueryBuilder":
        """Append a fragment and bind its parameter even when the value is None or empty."""
        self._warn_if_finalized()
        self._bind(fragment, key, value)
        return self

    def append_in(
        self,
        column: str,
        key: str,
        value: Any,
        negate: bool = False,
        connective: str = "and",
        placeholder: str = ":",
    ) -> "QueryBuilder":
        """
        Append a ``[not] in`` membership clause built from its parts.

        This is the structured counterpart of ``append`` for membership
        filters. The clause is rendered from the column and key, so under
        ``UNION_COMPARE`` an absent value yields the tautology directly
        instead of relying on the fragment matching a pattern.

        Args:
            column: Column reference, optionally alias-qualified
            key: Parameter name
            value: Parameter value, usually a collection
            negate: Render ``not in`` instead of ``in``
            connective: Keyword joining the clause to the preceding text ("" for none)
            placeholder: Placeholder prefix, ":" for managed queries or "$" for native ones

        Returns:
            This builder
        """
        validate_column_name(column)
        if not _IDENTIFIER_RE.match(key):
            raise ValueError(f"Invalid parameter name: {key}")
        if placeholder not in PLACEHOLDER_PREFIXES:
            raise ValueError(f"Invalid placeholder prefix: {placeholder}")

        operator = "not in" if negate else "in"
        if not is_absent(value):
            return self.append(
                _clause(connective, f"{column} {operator} ({placeholder}{key})"), key, value
            )
        if self._policy is UNION_COMPARE:
            predicate = TRUE_PREDICATE if negate else FALSE_PREDICATE
            return self.append_nullable(_clause(connective, predicate), key, value)

        self._warn_if_finalized()
        logger.debug(f"Omitting '{column} {operator}' clause for absent parameter '{key}'")
        return self

    def finalize_managed(self, engine: QueryEngine) -> QueryHandle:
        """
        Compile the text in the engine's managed dialect and apply all bindings.

        Errors raised by the engine (``QueryCompilationError``,
        ``UnknownParameterError``) propagate unchanged.

        Returns:
            The prepared, not yet executed query handle
        """
        return self._finalize(engine.compile_managed, "managed")

    def finalize_native(self, engine: QueryEngine) -> QueryHandle:
        """Compile the text in the engine's native dialect and apply all bindings."""
        return self._finalize(engine.compile_native, "native")

    def _finalize(self, compile_func: Callable[[str], QueryHandle], dialect: str) -> QueryHandle:
        text = self.text
        logger.debug(
            f"Finalizing {dialect} query with {len(self._params)} binding(s): "
            f"{text[:Settings.SQL_PREVIEW_LENGTH]}"
        )
        handle = compile_func(text)
        for name, value in self._params.items():
            handle = handle.bind(name, value)
        self._finalized = True
        return handle

    def _bind(self, fragment: str, key: str, value: Any) -> None:
        self._params[key] = value
        self._parts.append(fragment)

    def _warn_if_finalized(self) -> None:
        if self._finalized:
            logger.warning(
                "QueryBuilder modified after finalization; bindings from the previous build are kept"
            )


def _clause(connective: str, body: str) -> str:
    return f" {connective} {body} " if connective else f" {body} "
