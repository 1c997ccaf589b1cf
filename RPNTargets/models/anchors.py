#
# Faster R-CNN RPN Training Targets
# RPNTargets/models/anchors.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Anchor generation. A set of reference anchors (one per combination of
# aspect ratio and scale) is translated across every cell of the feature map.
# The grid is sized for the largest image a configuration admits so that every
# sample, regardless of its own size, addresses the same anchor index space.
# Anchors falling outside a particular image are simply never labeled.
#
# The anchor index used everywhere (labels, regression targets, sampled index
# lists) is:
#
#   index = (row * grid_size + col) * num_reference_anchors + k
#
# where k enumerates reference anchors ratio-major, scale-minor.
#

import logging
import numpy as np

from . import math_utils


logger = logging.getLogger(__name__)


def generate_reference_anchors(base_size, ratios, scales):
  """
  Generates reference anchors centered on the (0, 0, base_size, base_size)
  window by enumerating aspect ratios and scales.

  For an aspect ratio r = height / width, the area of the reference window is
  preserved:

    w * h = base_size^2, h = r * w  ->  w = sqrt(base_size^2 / r)

  and each scale then multiplies both sides.

  Parameters
  ----------
  base_size : int
    Side length of the reference window in pixels.
  ratios : List[float]
    Aspect ratios (height / width).
  scales : List[float]
    Scale factors applied to the ratio-adjusted window.

  Returns
  -------
  np.ndarray
    Reference anchors, (len(ratios) * len(scales), 4), each as
    (x1, y1, x2, y2). Ordered ratio-major, scale-minor.
  """
  center = 0.5 * base_size
  area = float(base_size * base_size)
  sizes = []
  for ratio in ratios:
    width = np.sqrt(area / ratio)
    height = width * ratio
    for scale in scales:
      sizes.append((width * scale, height * scale))
  sizes = np.array(sizes, dtype = np.float64)
  anchors = np.empty((sizes.shape[0], 4), dtype = np.float64)
  anchors[:,0:2] = center - 0.5 * sizes
  anchors[:,2:4] = center + 0.5 * sizes
  return anchors

def generate_anchors(config):
  """
  Generates the full anchor grid for a configuration. The result depends only
  on the configuration and is marked read-only so it can be shared by
  concurrent per-sample computations.

  Parameters
  ----------
  config : RPNTargets.config.LocalizationConfig
    Configuration. The grid has config.grid_size cells along each side,
    separated by config.feature_stride pixels.

  Returns
  -------
  np.ndarray
    All anchors, (config.total_anchors, 4), each as (x1, y1, x2, y2), in
    canonical anchor index order.
  """
  reference_anchors = generate_reference_anchors(base_size = config.base_size, ratios = config.ratios, scales = config.scales)
  num_reference_anchors = reference_anchors.shape[0]
  grid_size = config.grid_size

  # Generate (H*W,2) offsets, row-major, each being [x,y] in image space
  offsets = np.arange(grid_size) * config.feature_stride
  shift_x, shift_y = np.meshgrid(offsets, offsets)
  shifts = np.vstack([ shift_x.ravel(), shift_y.ravel() ]).T

  # (H*W,1,4) + (1,A,4) -> (H*W,A,4) -> (H*W*A,4)
  shifts = np.tile(shifts, reps = 2)
  anchors = shifts[:,None,:] + reference_anchors[None,:,:]
  anchors = anchors.reshape((grid_size * grid_size * num_reference_anchors, 4))

  assert anchors.shape[0] == config.total_anchors
  anchors.flags.writeable = False
  logger.debug("Generated %d anchors (%dx%d grid, %d per cell)" % (anchors.shape[0], grid_size, grid_size, num_reference_anchors))
  return anchors

def inside_image_bounds(width, height, anchors):
  """
  Parameters
  ----------
  width : int
    Image width in pixels.
  height : int
    Image height in pixels.
  anchors : np.ndarray
    All anchors, (N, 4).

  Returns
  -------
  np.ndarray
    Sorted indices of anchors lying entirely within the image and having
    positive area. Only these anchors may be labeled.
  """
  inside = (
    (anchors[:,0] >= 0) &
    (anchors[:,1] >= 0) &
    (anchors[:,2] <= width) &
    (anchors[:,3] <= height) &
    (math_utils.box_areas(anchors) > 0)
  )
  return np.where(inside)[0]

def anchor_origin(index, grid_size, num_reference_anchors):
  """
  Returns the (row, col, k) grid cell and reference anchor index of an anchor.
  """
  cell, k = divmod(int(index), num_reference_anchors)
  row, col = divmod(cell, grid_size)
  return row, col, k
