"""
Capability assessor.

Classifies how likely it is that the repository's releases are protected
by the platform's immutable-release policy. Pure: no I/O.
"""

from retain_pipeline.core.models import (
    CapabilityAssessment,
    CapabilityLevel,
    OwnerKind,
    RepositoryContext,
    SecurityFeature,
    Visibility,
)

REASON_SECRET_SCANNING = "secret_scanning_enabled"
REASON_PUSH_PROTECTION = "push_protection_enabled"
REASON_ORGANIZATION = "organization_owned"
REASON_PUBLIC = "public_repository"
REASON_NON_PRIVATE = "non_private_repository"

_FEATURE_REASONS = {
    SecurityFeature.SECRET_SCANNING: REASON_SECRET_SCANNING,
    SecurityFeature.SECRET_SCANNING_PUSH_PROTECTION: REASON_PUSH_PROTECTION,
}


def detection_reasons(context: RepositoryContext) -> tuple[str, ...]:
    """Return every detection signal present in the context, in a stable order."""
    reasons = [
        reason
        for feature, reason in _FEATURE_REASONS.items()
        if feature in context.security_features
    ]
    if context.owner_kind is OwnerKind.ORGANIZATION:
        reasons.append(REASON_ORGANIZATION)
    if context.visibility is Visibility.PUBLIC:
        reasons.append(REASON_PUBLIC)
    elif context.visibility is None and context.private is False:
        reasons.append(REASON_NON_PRIVATE)
    return tuple(reasons)


def assess_capability(context: RepositoryContext) -> CapabilityLevel:
    """
    Classify immutable-release readiness.

    User-owned repositories are always unsupported. Otherwise the level is
    the highest one reached: an active secret-scanning feature gives
    ``likely``; organization ownership or public visibility gives
    ``supported``.
    """
    if context.owner_kind is not OwnerKind.ORGANIZATION:
        return CapabilityLevel.UNSUPPORTED

    levels = [CapabilityLevel.SUPPORTED]
    if context.security_features.intersection(_FEATURE_REASONS):
        levels.append(CapabilityLevel.LIKELY)
    return max(levels, key=lambda level: level.rank)


def assess(context: RepositoryContext) -> CapabilityAssessment:
    """Assess the context and keep the reasons that fired."""
    return CapabilityAssessment(
        level=assess_capability(context),
        reasons=detection_reasons(context),
    )
