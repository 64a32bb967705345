"""Exceptions raised by fedtrust.

Lookups never raise for a missing record; they return None or an empty
collection. OrganizationNotFound is reserved for the operations that cannot
produce a result without their subject (score calculation, trend prediction,
peer comparison, bilateral trust).
"""


class FedTrustError(Exception):
    """Base class for fedtrust errors."""


class OrganizationNotFound(FedTrustError, KeyError):
    """The subject organization is not registered."""

    def __init__(self, organization_id: str):
        self.organization_id = organization_id
        super().__init__(f"Organization not found: {organization_id}")

    def __str__(self) -> str:
        return self.args[0]
