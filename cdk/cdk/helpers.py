"""
Shared helper utilities for CDK stack construction.

This module provides:
- Region abbreviation mapping for resource naming
- Resource naming function (rn)
- Context and environment configuration utilities
"""

import os
from typing import Any, Optional

# Region abbreviation mapping for resource naming
# Pattern: {name}-{region_abbrev}-{env} e.g. awsug-sprints-ue1-dev
REGION_ABBREVIATIONS: dict[str, str] = {
    "us-east-1": "ue1",
    "us-east-2": "ue2",
    "us-west-1": "uw1",
    "us-west-2": "uw2",
    "eu-west-1": "ew1",
    "eu-west-2": "ew2",
    "eu-central-1": "ec1",
    "ap-northeast-1": "ane1",  # Tokyo
    "ap-southeast-1": "ase1",  # Singapore
    "ap-southeast-2": "ase2",  # Sydney
    "ap-south-1": "as1",  # Mumbai
    "ap-south-2": "as2",  # Hyderabad
}

# Environments whose data must survive a stack deletion
PROTECTED_ENVIRONMENTS = ("prod",)


def get_region() -> str:
    """Get the AWS region from environment variables or default to us-east-1."""
    return os.getenv("AWS_REGION") or os.getenv("CDK_DEFAULT_REGION") or "us-east-1"


def get_region_abbrev(region: Optional[str] = None) -> str:
    """Get the region abbreviation for resource naming.

    Args:
        region: AWS region code. If None, reads from environment.

    Returns:
        Region abbreviation (e.g., 'ue1' for 'us-east-1')
    """
    if region is None:
        region = get_region()
    return REGION_ABBREVIATIONS.get(region, region[:3])


def make_resource_namer(region_abbrev: str, env_name: str):
    """Create a resource naming function.

    Args:
        region_abbrev: Region abbreviation (e.g., 'ue1')
        env_name: Environment name (e.g., 'dev', 'prod')

    Returns:
        A function that takes a base name and returns a fully qualified name
    """

    def rn(name: str, abbrev: str = region_abbrev, env: str = env_name) -> str:
        """Generate resource name with region and environment suffix."""
        return f"{name}-{abbrev}-{env}"

    return rn


def is_protected_environment(env_name: str) -> bool:
    """Whether tables in ``env_name`` are retained and deletion-protected."""
    return env_name in PROTECTED_ENVIRONMENTS


def get_context_bool(construct: Any, key: str, default: bool = False) -> bool:
    """Read a boolean CDK context value.

    Context passed on the command line arrives as a string, so 'false'
    (any case) is False and any other string is True.

    Args:
        construct: Construct whose node holds the context
        key: Context key
        default: Value when the key is absent

    Returns:
        The boolean value
    """
    value = construct.node.try_get_context(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).lower() != "false"
