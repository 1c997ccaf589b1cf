#
# Faster R-CNN RPN Training Targets
# RPNTargets/visualize.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Debug rendering of anchor targets.
#

import numpy as np
from PIL import Image, ImageDraw

from .models import targets


def _draw_rectangle(ctx, corners, color, thickness = 4):
  x_min, y_min, x_max, y_max = corners
  ctx.rectangle(xy = [(x_min, y_min), (x_max, y_max)], outline = color, width = thickness)

def show_anchors(output_path, decoded, anchors, image = None, show_background = False, display = False):
  """
  Draws ground truth boxes (green), sampled object anchors (yellow), and,
  optionally, sampled background anchors (red).

  Parameters
  ----------
  output_path : str
    File to write. Format is determined by the extension.
  decoded : RPNTargets.datasets.training_sample.DecodedSample
    Transformed sample.
  anchors : np.ndarray
    Anchor grid the sample was transformed with, (N, 4).
  image : PIL.Image
    Image to draw on, already scaled to decoded.output_image_size. If None, a
    black image of that size is used.
  show_background : bool
    Whether to draw the sampled background anchors.
  display : bool
    Whether to also show the image on screen.

  Returns
  -------
  PIL.Image
    The rendered image.
  """
  if image is None:
    image = Image.new(mode = "RGB", size = tuple(decoded.output_image_size))
  else:
    image = image.copy()
  ctx = ImageDraw.Draw(image, mode = "RGBA")

  if show_background:
    for idx in np.where(decoded.labels == targets.BACKGROUND)[0]:
      _draw_rectangle(ctx, corners = anchors[idx], color = (255, 0, 0, 96), thickness = 1)

  for box in decoded.gt_boxes:
    _draw_rectangle(ctx, corners = box.corners, color = (0, 255, 0))

  for idx in np.where(decoded.labels == targets.OBJECT)[0]:
    _draw_rectangle(ctx, corners = anchors[idx], color = (255, 255, 0), thickness = 2)

  if output_path is not None:
    image.save(output_path)
  if display:
    image.show()
  return image
