"""Label combinations for each configuration dimension of a key/value store."""

from __future__ import annotations

import enum

from layerconf.remote import (
    LABEL_APP,
    LABEL_ENVIRONMENT,
    LABEL_SERVICE,
    AppEmptyError,
    LabelsNilError,
)


class DimensionName(str, enum.Enum):
    """A dimension of configuration; each corresponds to one label combination."""

    APP = "app"
    SERVICE = "service"


DIMENSION_PRECEDENCE: tuple[DimensionName, ...] = (DimensionName.APP, DimensionName.SERVICE)
"""Dimensions ordered from lowest to highest precedence."""


def generate_labels(
    dimension: DimensionName | str, options_labels: dict[str, str] | None
) -> dict[str, str]:
    """Pick the labels that identify ``dimension`` out of ``options_labels``."""
    if options_labels is None:
        raise LabelsNilError()
    app = options_labels.get(LABEL_APP, "")
    if not app:
        raise AppEmptyError()
    labels = {
        LABEL_APP: app,
        LABEL_ENVIRONMENT: options_labels.get(LABEL_ENVIRONMENT, ""),
    }
    if dimension == DimensionName.APP:
        return labels
    labels[LABEL_SERVICE] = options_labels.get(LABEL_SERVICE, "")
    if dimension == DimensionName.SERVICE:
        return labels
    name = dimension.value if isinstance(dimension, DimensionName) else dimension
    raise ValueError(f"do not support dimension {name}")