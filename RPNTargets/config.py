#
# Faster R-CNN RPN Training Targets
# RPNTargets/config.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Anchor target configuration. Constructed once from a mapping (typically
# parsed from JSON) and validated field by field. The resulting object is
# frozen and shared read-only by every pipeline stage.
#

from collections.abc import Mapping
import json
import math
import numpy as np
from typing import Dict
from typing import List

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import ValidationError
from pydantic import field_validator
from pydantic import model_validator

from .errors import ConfigError


_float_types = {
  "float":    np.float32,
  "float32":  np.float32,
  "double":   np.float64,
  "float64":  np.float64
}


class LocalizationConfig(BaseModel):
  """
  RPN anchor target parameters. Only `labels` is required.
  """
  model_config = ConfigDict(frozen = True, extra = "forbid")

  labels: List[str] = Field(..., min_length = 1, description = "Class names; index in this list is the class index")
  min_size: int = Field(600, gt = 0, description = "Length of shorter image side after scaling")
  max_size: int = Field(1000, gt = 0, description = "Upper bound on the longer image side after scaling")
  rois_per_image: int = Field(256, gt = 0, description = "Number of anchors sampled per image")
  base_size: int = Field(16, gt = 0, description = "Side length of the reference anchor window")
  scaling_factor: float = Field(1.0 / 16.0, gt = 0, description = "Feature map cells per image pixel")
  ratios: List[float] = Field([ 0.5, 1.0, 2.0 ], min_length = 1, description = "Anchor aspect ratios (height / width)")
  scales: List[float] = Field([ 8.0, 16.0, 32.0 ], min_length = 1, description = "Anchor scales relative to base_size")
  negative_overlap: float = Field(0.3, ge = 0.0, le = 1.0, description = "Background anchors have max IoU below this")
  positive_overlap: float = Field(0.7, ge = 0.0, le = 1.0, description = "Object anchors have max IoU at or above this")
  foreground_fraction: float = Field(0.5, ge = 0.0, le = 1.0, description = "Upper bound on fraction of sampled anchors that are objects")
  type_string: str = Field("float", description = "Element type of floating point output buffers")
  max_gt_boxes: int = Field(64, gt = 0, description = "Ground truth boxes retained per image")
  seed: int = Field(0, ge = 0, description = "Base seed for per-sample anchor sampling")

  @field_validator("labels")
  @classmethod
  def _unique_labels(cls, v):
    if len(set(v)) != len(v):
      raise ValueError("labels must be unique")
    return v

  @field_validator("ratios", "scales")
  @classmethod
  def _positive_values(cls, v):
    if any(value <= 0 for value in v):
      raise ValueError("all values must be positive")
    return v

  @field_validator("type_string")
  @classmethod
  def _valid_type(cls, v):
    if v not in _float_types:
      raise ValueError("must be one of: " + ", ".join(_float_types.keys()))
    return v

  @model_validator(mode = "after")
  def _check_consistency(self):
    if self.negative_overlap > self.positive_overlap:
      raise ValueError("negative_overlap (%f) must not exceed positive_overlap (%f)" % (self.negative_overlap, self.positive_overlap))
    if self.min_size > self.max_size:
      raise ValueError("min_size (%d) must not exceed max_size (%d)" % (self.min_size, self.max_size))
    if self.grid_size < 1:
      raise ValueError("max_size * scaling_factor must produce at least one feature map cell")
    return self

  @property
  def grid_size(self):
    """
    Feature map cells along each side of the anchor grid, sized for the
    largest image the configuration admits.
    """
    return int(math.floor(self.max_size * self.scaling_factor))

  @property
  def feature_stride(self):
    return 1.0 / self.scaling_factor

  @property
  def num_reference_anchors(self):
    return len(self.ratios) * len(self.scales)

  @property
  def total_anchors(self):
    return self.num_reference_anchors * self.grid_size * self.grid_size

  @property
  def label_map(self) -> Dict[str, int]:
    return { name: index for (index, name) in enumerate(self.labels) }

  @property
  def float_dtype(self):
    return np.dtype(_float_types[self.type_string])

  @classmethod
  def from_json(cls, filepath):
    with open(filepath) as fp:
      try:
        options = json.load(fp)
      except json.JSONDecodeError as e:
        raise ConfigError([ "%s: %s" % (filepath, e) ]) from e
    return load_config(options)


def _format_errors(e):
  errors = []
  for error in e.errors():
    location = ".".join([ str(part) for part in error["loc"] ]) or "config"
    errors.append("%s: %s" % (location, error["msg"]))
  return errors

def load_config(options):
  """
  Builds a validated configuration.

  Parameters
  ----------
  options : Mapping[str, Any]
    Field values. Missing optional fields take their defaults.

  Returns
  -------
  LocalizationConfig
    Frozen configuration.

  Raises
  ------
  ConfigError
    If a required field is missing, a field is unknown, or any validator
    rejects a value. Every violation is listed.
  """
  if not isinstance(options, Mapping):
    raise ConfigError([ "config: expected a mapping of options, got %s" % type(options).__name__ ])
  try:
    return LocalizationConfig(**dict(options))
  except ValidationError as e:
    raise ConfigError(_format_errors(e)) from e
