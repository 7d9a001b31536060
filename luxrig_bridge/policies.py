"""
Client-side provider selection policies, built on top of the aggregator.

The aggregator is provider-inclusive. Some front ends want a single
"active" provider instead: try providers in a fixed priority order and take
the first one that reports at least one model.
"""
from dataclasses import dataclass
from typing import Optional

from .provider import ModelDescriptor


@dataclass
class Selection:
    provider: Optional[str]
    model: Optional[str]

    @property
    def found(self) -> bool:
        return self.provider is not None


def select_first_available(
    models_by_provider: dict[str, list[ModelDescriptor]],
    priority: list[str],
) -> Selection:
    """
    Pick the first provider (by priority) that has any models.

    Providers missing from the priority list are tried afterwards, in the
    order they appear in models_by_provider.
    """
    ordered = [p for p in priority if p in models_by_provider]
    ordered += [p for p in models_by_provider if p not in ordered]

    for provider_id in ordered:
        models = models_by_provider.get(provider_id) or []
        if models:
            return Selection(provider=provider_id, model=models[0].id)
    return Selection(provider=None, model=None)
