#
# Faster R-CNN RPN Training Targets
# RPNTargets/datasets/training_sample.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Definition of a decoded sample and the boxes it contains. All items
# pertaining to a single sample are bundled together for convenience.
#

from dataclasses import dataclass
from dataclasses import field
from dataclasses import replace
import math
import numpy as np
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Tuple

from ..errors import DegenerateBoxError


@dataclass(frozen = True)
class Box:
  xmin: float
  ymin: float
  xmax: float
  ymax: float

  def __post_init__(self):
    if not all(math.isfinite(value) for value in (self.xmin, self.ymin, self.xmax, self.ymax)):
      raise DegenerateBoxError("Box corners must be finite: (%f,%f,%f,%f)" % (self.xmin, self.ymin, self.xmax, self.ymax))
    if self.xmin > self.xmax or self.ymin > self.ymax:
      raise DegenerateBoxError("Box corners are inverted: (%f,%f,%f,%f)" % (self.xmin, self.ymin, self.xmax, self.ymax))

  @property
  def width(self):
    return self.xmax - self.xmin

  @property
  def height(self):
    return self.ymax - self.ymin

  @property
  def area(self):
    return self.width * self.height

  @property
  def center(self):
    return (self.xmin + 0.5 * self.width, self.ymin + 0.5 * self.height)

  @property
  def corners(self):
    return np.array([ self.xmin, self.ymin, self.xmax, self.ymax ], dtype = np.float64)

  def scaled(self, scale):
    return replace(self, xmin = self.xmin * scale, ymin = self.ymin * scale, xmax = self.xmax * scale, ymax = self.ymax * scale)

  def __repr__(self):
    return "[(%f,%f,%f,%f)]" % (self.xmin, self.ymin, self.xmax, self.ymax)

@dataclass(frozen = True)
class GroundTruthBox(Box):
  class_index: int = 0
  class_name: str = ""
  difficult: bool = False

  def __repr__(self):
    return "[class=%s (%f,%f,%f,%f)]" % (self.class_name, self.xmin, self.ymin, self.xmax, self.ymax)

class Target(NamedTuple):
  dx: float
  dy: float
  dw: float
  dh: float

@dataclass
class DecodedSample:
  gt_boxes:             List[GroundTruthBox]          # ground truth boxes, in original image space until transformed, then scaled
  image_width:          int                           # original image size from the annotation
  image_height:         int
  image_depth:          int = 3
  labels:               Optional[np.ndarray] = None   # (total_anchors,) int32: -1 = ignore, 0 = background, 1 = object
  bbox_targets:         Optional[np.ndarray] = None   # (total_anchors,4) float32 as (dx,dy,dw,dh), zero where absent
  anchor_index:         Optional[np.ndarray] = None   # sorted indices of sampled anchors
  image_scale:          float = 1.0
  output_image_size:    Tuple[int, int] = (0, 0)      # (width,height) of scaled image
  insufficient_anchors: bool = False
  filepath:             Optional[str] = field(default = None, compare = False)

  def target(self, index):
    dx, dy, dw, dh = self.bbox_targets[index]
    return Target(dx = float(dx), dy = float(dy), dw = float(dw), dh = float(dh))

  @property
  def num_foreground(self):
    return int(np.sum(self.labels == 1)) if self.labels is not None else 0

  @property
  def num_background(self):
    return int(np.sum(self.labels == 0)) if self.labels is not None else 0
