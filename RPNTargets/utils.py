#
# Faster R-CNN RPN Training Targets
# RPNTargets/utils.py
# Copyright 2021-2022 Bart Trzynadlowski
#
# Miscellaneous utilities.
#

class CSVLog:
  """
  Logs to a CSV file. The columns are fixed by the first row logged.
  """
  def __init__(self, filename):
    self._filename = filename
    self._header_written = False
    self._keys = None

  def log(self, items):
    if self._keys is None:
      self._keys = list(items.keys())
    elif list(items.keys()) != self._keys:
      raise ValueError("CSV log columns changed from %s to %s" % (", ".join(self._keys), ", ".join(items.keys())))
    file_mode = "a" if self._header_written else "w"
    with open(self._filename, file_mode) as fp:
      if not self._header_written:
        fp.write(",".join(self._keys) + "\n")
        self._header_written = True
      values = [ str(value) for (key, value) in items.items() ]
      fp.write(",".join(values) + "\n")
