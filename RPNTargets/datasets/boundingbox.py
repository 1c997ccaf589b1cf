#
# Faster R-CNN RPN Training Targets
# RPNTargets/datasets/boundingbox.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Bounding box annotation decoding. Two encodings are understood:
#
#   - JSON, one document per image:
#
#       {
#         "size": { "width": 500, "height": 375, "depth": 3 },
#         "object": [
#           {
#             "name": "dog",
#             "difficult": false,
#             "bndbox": { "xmin": 48, "ymin": 240, "xmax": 195, "ymax": 371 }
#           }
#         ]
#       }
#
#     Coordinates are 0-based pixels.
#
#   - PASCAL VOC XML annotation files. VOC coordinates are 1-based and are
#     converted to 0-based.
#

from dataclasses import dataclass
import json
import logging
import xml.etree.ElementTree as ET
from typing import List
from typing import Tuple

from .training_sample import GroundTruthBox
from ..errors import DecodeError
from ..errors import DegenerateBoxError


logger = logging.getLogger(__name__)


@dataclass(frozen = True)
class ImageInfo:
  width: int
  height: int
  depth: int = 3


def _parse_difficult(value):
  """
  Accepts a boolean, an integer, or the text of a non-negative integer, as written by
  VOC ("0" or "1"). Any other value is malformed.
  """
  if isinstance(value, bool):
    return value
  if isinstance(value, int):
    return value != 0
  if isinstance(value, str) and value.strip().isdigit():
    return int(value) != 0
  raise DecodeError("Invalid 'difficult' flag: %s" % repr(value))


class Decoder:
  """
  Decodes annotation bytes into ground truth boxes and image metadata.
  """

  def __init__(self, label_map):
    """
    Parameters
    ----------
    label_map : Dict[str, int]
      Maps class names to class indices. Objects with any other name make the
      annotation undecodable.
    """
    self._label_map = dict(label_map)

  def decode(self, data) -> Tuple[List[GroundTruthBox], ImageInfo]:
    """
    Parameters
    ----------
    data : bytes
      Encoded annotation.

    Returns
    -------
    List[GroundTruthBox], ImageInfo
      Ground truth boxes in annotation order and image size.

    Raises
    ------
    DecodeError
      If the data cannot be parsed or describes an invalid annotation.
    """
    if isinstance(data, str):
      data = data.encode("utf-8")
    if not isinstance(data, (bytes, bytearray)) or len(data) == 0:
      raise DecodeError("Annotation is empty or not bytes")
    if data.lstrip()[:1] == b"<":
      return self._decode_xml(data)
    return self._decode_json(data)

  def _make_box(self, name, difficult, xmin, ymin, xmax, ymax):
    if name not in self._label_map:
      raise DecodeError("Unknown class label: '%s'" % name)
    try:
      return GroundTruthBox(
        xmin = float(xmin),
        ymin = float(ymin),
        xmax = float(xmax),
        ymax = float(ymax),
        class_index = self._label_map[name],
        class_name = name,
        difficult = _parse_difficult(difficult)
      )
    except DegenerateBoxError as e:
      raise DecodeError("Invalid box for '%s': %s" % (name, e)) from e
    except (TypeError, ValueError) as e:
      raise DecodeError("Invalid box coordinates for '%s': %s" % (name, e)) from e

  def _decode_json(self, data):
    try:
      root = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
      raise DecodeError("Unable to parse JSON annotation: %s" % e) from e
    if not isinstance(root, dict):
      raise DecodeError("JSON annotation must be an object")
    try:
      size = root["size"]
      info = ImageInfo(width = int(size["width"]), height = int(size["height"]), depth = int(size.get("depth", 3)))
      boxes = []
      for obj in root.get("object", []):
        bndbox = obj["bndbox"]
        boxes.append(self._make_box(
          name = obj["name"],
          difficult = obj.get("difficult", False),
          xmin = bndbox["xmin"],
          ymin = bndbox["ymin"],
          xmax = bndbox["xmax"],
          ymax = bndbox["ymax"]
        ))
    except (KeyError, TypeError, ValueError, OverflowError, AttributeError) as e:
      raise DecodeError("Malformed JSON annotation: %s" % repr(e)) from e
    self._check_image_info(info)
    return boxes, info

  def _decode_xml(self, data):
    try:
      root = ET.fromstring(data)
    except ET.ParseError as e:
      raise DecodeError("Unable to parse XML annotation: %s" % e) from e
    try:
      size = root.find("size")
      depth = size.find("depth")
      info = ImageInfo(
        width = int(size.find("width").text),
        height = int(size.find("height").text),
        depth = int(depth.text) if depth is not None else 3
      )
      boxes = []
      for obj in root.findall("object"):
        difficult = obj.find("difficult")
        bndbox = obj.find("bndbox")
        boxes.append(self._make_box(
          name = obj.find("name").text,
          difficult = difficult.text if difficult is not None else False,
          xmin = float(bndbox.find("xmin").text) - 1,  # convert to 0-based pixel coordinates
          ymin = float(bndbox.find("ymin").text) - 1,
          xmax = float(bndbox.find("xmax").text) - 1,
          ymax = float(bndbox.find("ymax").text) - 1
        ))
    except (AttributeError, TypeError, ValueError, OverflowError) as e:
      raise DecodeError("Malformed XML annotation: %s" % repr(e)) from e
    self._check_image_info(info)
    return boxes, info

  @staticmethod
  def _check_image_info(info):
    if info.width <= 0 or info.height <= 0:
      raise DecodeError("Invalid image size: %dx%d" % (info.width, info.height))
