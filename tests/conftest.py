"""Shared fixtures: a controllable clock and a fresh federation per test."""
import os
import sys

import pytest

# Ensure src is on path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from fedtrust import (
    FederationConfig,
    FederationContext,
    OrganizationType,
    VerificationStatus,
)

DAY = 24 * 60 * 60
START = 1_700_000_000.0


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = START):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return FederationConfig()


@pytest.fixture
def ctx(clock, config):
    return FederationContext.create(config=config, clock=clock)


@pytest.fixture
def registry(ctx):
    return ctx.registry


@pytest.fixture
def graph(ctx):
    return ctx.graph


@pytest.fixture
def engine(ctx):
    return ctx.engine


@pytest.fixture
def make_org(registry):
    """Register an organization, optionally verified."""
    def _make(name, org_type=OrganizationType.GROWER, country="US", region="west",
              verified=False, **kwargs):
        org = registry.register_organization(name, org_type, country, region, **kwargs)
        if verified:
            registry.update_organization(org.id, verification_status=VerificationStatus.VERIFIED)
        return org
    return _make


@pytest.fixture
def triangle(registry, make_org):
    """A trusts B, B trusts C, C trusts A; D is isolated."""
    a = make_org("Alpha Farms", verified=True)
    b = make_org("Beta Research", OrganizationType.RESEARCH, verified=True)
    c = make_org("Gamma Supply", OrganizationType.SUPPLIER)
    d = make_org("Delta Coop", OrganizationType.COOPERATIVE, country="CA", region="north")
    registry.establish_trust(a.id, b.id, 0.9)
    registry.establish_trust(b.id, c.id, 0.7)
    registry.establish_trust(c.id, a.id, 0.4)
    return a, b, c, d
