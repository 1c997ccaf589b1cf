import json
import pytest

from RPNTargets.datasets.boundingbox import Decoder
from RPNTargets.datasets.boundingbox import ImageInfo
from RPNTargets.errors import DecodeError


label_map = { "cat": 0, "dog": 1 }

def _json_annotation(objects, width = 500, height = 375):
  return json.dumps({ "size": { "width": width, "height": height, "depth": 3 }, "object": objects }).encode("utf-8")

def _object(name = "dog", xmin = 48, ymin = 240, xmax = 195, ymax = 371, difficult = False):
  return { "name": name, "difficult": difficult, "bndbox": { "xmin": xmin, "ymin": ymin, "xmax": xmax, "ymax": ymax } }

voc_annotation = b"""<annotation>
  <folder>VOC2007</folder>
  <filename>000001.jpg</filename>
  <size>
    <width>353</width>
    <height>500</height>
    <depth>3</depth>
  </size>
  <object>
    <name>dog</name>
    <difficult>0</difficult>
    <bndbox>
      <xmin>48</xmin>
      <ymin>240</ymin>
      <xmax>195</xmax>
      <ymax>371</ymax>
    </bndbox>
  </object>
  <object>
    <name>cat</name>
    <difficult>1</difficult>
    <bndbox>
      <xmin>8</xmin>
      <ymin>12</ymin>
      <xmax>352</xmax>
      <ymax>498</ymax>
    </bndbox>
  </object>
</annotation>
"""


class TestJSON:
  def test_decode(self):
    boxes, info = Decoder(label_map).decode(_json_annotation([ _object(), _object(name = "cat", xmin = 1, ymin = 2, xmax = 3, ymax = 4, difficult = True) ]))
    assert info == ImageInfo(width = 500, height = 375, depth = 3)
    assert len(boxes) == 2
    assert boxes[0].corners.tolist() == [ 48, 240, 195, 371 ]
    assert boxes[0].class_index == 1
    assert boxes[0].class_name == "dog"
    assert not boxes[0].difficult
    assert boxes[1].class_index == 0
    assert boxes[1].difficult

  def test_no_objects(self):
    boxes, info = Decoder(label_map).decode(_json_annotation([]))
    assert boxes == []
    assert info.width == 500

  def test_accepts_str(self):
    boxes, _ = Decoder(label_map).decode(_json_annotation([ _object() ]).decode("utf-8"))
    assert len(boxes) == 1

  @pytest.mark.parametrize("data", [
    b"",
    b"{ not json",
    b"[1, 2, 3]",
    b"\xff\xfe\x00",
    json.dumps({ "object": [] }).encode("utf-8"),
    json.dumps({ "size": { "width": 0, "height": 10 }, "object": [] }).encode("utf-8"),
    json.dumps({ "size": { "width": 10, "height": 10 }, "object": [ { "name": "dog" } ] }).encode("utf-8"),
    json.dumps({ "size": { "width": 10, "height": 10 }, "object": [ { "name": "dog", "bndbox": { "xmin": "a", "ymin": 0, "xmax": 1, "ymax": 1 } } ] }).encode("utf-8"),
    b'{ "size": { "width": 10, "height": 10 }, "object": [ { "name": "dog", "bndbox": { "xmin": NaN, "ymin": 0, "xmax": 10, "ymax": Infinity } } ] }',
    b'{ "size": { "width": 10, "height": 10 }, "object": [ { "name": "dog", "bndbox": { "xmin": 0, "ymin": 0, "xmax": 10, "ymax": 1e400 } } ] }',
    b'{ "size": { "width": Infinity, "height": 10 }, "object": [] }'
  ])
  def test_malformed(self, data):
    with pytest.raises(DecodeError):
      Decoder(label_map).decode(data)

  def test_unknown_label(self):
    with pytest.raises(DecodeError, match = "horse"):
      Decoder(label_map).decode(_json_annotation([ _object(name = "horse") ]))

  def test_inverted_box(self):
    with pytest.raises(DecodeError):
      Decoder(label_map).decode(_json_annotation([ _object(xmin = 100, xmax = 50) ]))

  @pytest.mark.parametrize("difficult,expected", [
    (False, False),
    (0, False),
    ("0", False),
    (True, True),
    (1, True),
    ("1", True)
  ])
  def test_difficult_flag(self, difficult, expected):
    boxes, _ = Decoder(label_map).decode(_json_annotation([ _object(difficult = difficult) ]))
    assert boxes[0].difficult == expected

  def test_missing_difficult_flag(self):
    obj = _object()
    del obj["difficult"]
    boxes, _ = Decoder(label_map).decode(_json_annotation([ obj ]))
    assert not boxes[0].difficult

  @pytest.mark.parametrize("difficult", [ "yes", "", None, 0.5, [ 1 ] ])
  def test_invalid_difficult_flag(self, difficult):
    with pytest.raises(DecodeError, match = "difficult"):
      Decoder(label_map).decode(_json_annotation([ _object(difficult = difficult) ]))


class TestXML:
  def test_decode(self):
    boxes, info = Decoder(label_map).decode(voc_annotation)
    assert info == ImageInfo(width = 353, height = 500, depth = 3)
    assert len(boxes) == 2
    assert boxes[0].corners.tolist() == [ 47, 239, 194, 370 ]  # 0-based
    assert boxes[0].class_name == "dog"
    assert not boxes[0].difficult
    assert boxes[1].class_index == 0
    assert boxes[1].difficult

  def test_malformed(self):
    with pytest.raises(DecodeError):
      Decoder(label_map).decode(b"<annotation><size><width>10</width>")

  def test_missing_bndbox(self):
    data = b"<annotation><size><width>10</width><height>10</height></size><object><name>dog</name></object></annotation>"
    with pytest.raises(DecodeError):
      Decoder(label_map).decode(data)

  @pytest.mark.parametrize("xmin,ymax", [ ("nan", "371"), ("1", "inf"), ("-inf", "371") ])
  def test_non_finite_coordinates(self, xmin, ymax):
    data = voc_annotation.replace(b"<xmin>48</xmin>", b"<xmin>%s</xmin>" % xmin.encode("ascii")).replace(b"<ymax>371</ymax>", b"<ymax>%s</ymax>" % ymax.encode("ascii"))
    with pytest.raises(DecodeError):
      Decoder(label_map).decode(data)

  def test_invalid_difficult_flag(self):
    with pytest.raises(DecodeError, match = "difficult"):
      Decoder(label_map).decode(voc_annotation.replace(b"<difficult>1</difficult>", b"<difficult>yes</difficult>"))
