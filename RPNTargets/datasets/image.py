#
# Faster R-CNN RPN Training Targets
# RPNTargets/datasets/image.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Image transform parameters. Images are resized (elsewhere) so that the
# shorter side is min_size pixels, unless that would make the longer side
# exceed max_size, in which case the longer side is max_size. Only the
# resulting geometry is needed to generate anchor targets.
#

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen = True)
class ImageParams:
  """
  Geometry of an image after resizing. Ground truth boxes are multiplied by
  scale and anchors must lie within output_size to be used.
  """
  scale: float
  output_size: Tuple[int, int]  # (width, height)

  @property
  def output_width(self):
    return self.output_size[0]

  @property
  def output_height(self):
    return self.output_size[1]


def _compute_scale_factor(original_width, original_height, min_size, max_size):
  short_side = min(original_width, original_height)
  long_side = max(original_width, original_height)
  scale_factor = min_size / short_side
  if round(scale_factor * long_side) > max_size:
    scale_factor = max_size / long_side
  return scale_factor

def compute_image_params(original_width, original_height, min_size, max_size):
  """
  Computes the scale factor and output size for an image.

  Parameters
  ----------
  original_width : int
    Width of the image as annotated.
  original_height : int
    Height of the image as annotated.
  min_size : int
    Target length of the shorter side.
  max_size : int
    Upper bound on the length of the longer side.

  Returns
  -------
  ImageParams
    Scale factor and output (width, height). Output dimensions never exceed
    max_size.
  """
  if original_width <= 0 or original_height <= 0:
    raise ValueError("Image dimensions must be positive: %dx%d" % (original_width, original_height))
  scale_factor = _compute_scale_factor(original_width = original_width, original_height = original_height, min_size = min_size, max_size = max_size)
  width = min(int(original_width * scale_factor), max_size)
  height = min(int(original_height * scale_factor), max_size)
  return ImageParams(scale = scale_factor, output_size = (width, height))
