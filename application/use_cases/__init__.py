"""
Application Use Cases for the workout sync engine.

Use cases are the entry points the presentation layer calls. They write
through the local store and the outbound queue together and never talk to
the remote backend directly.

Usage:
    from application.use_cases import OnboardingService, RecordMutationService

    mutations = RecordMutationService(store, queue)
    onboarding = OnboardingService(mutations, events)
"""

from application.use_cases.onboarding import OnboardingService
from application.use_cases.record_mutation import RecordMutationService

__all__ = [
    "OnboardingService",
    "RecordMutationService",
]
