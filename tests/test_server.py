"""HTTP tests for the FastAPI server (TestClient, no network)."""

from __future__ import annotations

import json
import unittest

from fastapi.testclient import TestClient

from printloop.web.server import PREVIEW_LINES, app
from tests.fixtures import damage_payload, make_3mf, make_plate_gcode, read_zip


class TestServer(unittest.TestCase):

    def setUp(self):
        self.client = TestClient(app)
        self.source = make_3mf(make_plate_gcode(eol="\r\n").encode())

    def _upload(self, data=None, name="Cube Plate.gcode.3mf"):
        return {"file": (name, data if data is not None else self.source, "application/octet-stream")}

    def test_defaults(self):
        r = self.client.get("/api/defaults")
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["loops"], 1)
        self.assertEqual(body["plate_index"], 1)
        self.assertEqual(body["detach"]["bend_cycles"], 6)
        self.assertEqual(body["detach"]["cool_mode"], "temp")

    def test_inspect(self):
        r = self.client.post("/api/inspect", files=self._upload())
        self.assertEqual(r.status_code, 200)
        body = r.json()
        self.assertEqual(body["instruction"], "Metadata/plate_1.gcode")
        self.assertEqual(len(body["entries"]), 5)
        self.assertEqual(body["defaults"]["loops"], 1)
        self.assertTrue(body["layout"]["has_blocks"])
        self.assertEqual(body["preview"][0], "; HEADER_BLOCK_START")
        self.assertLessEqual(len(body["preview"]), PREVIEW_LINES)

    def test_inspect_rejects_garbage(self):
        r = self.client.post("/api/inspect", files=self._upload(b"not a zip"))
        self.assertEqual(r.status_code, 400)

    def test_build(self):
        settings = {"loops": 2, "detach": {"home_between": True}}
        r = self.client.post("/api/build", files=self._upload(), data={"settings": json.dumps(settings)})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.headers["content-type"], "application/zip")
        self.assertIn("Cube_Plate__loopx2.gcode.3mf", r.headers["content-disposition"])
        self.assertIn("Looped: 2x", r.headers["x-printloop-stages"])
        plate = read_zip(r.content)["Metadata/plate_1.gcode"].decode()
        self.assertEqual(plate.count("G28 X Y"), 2)

    def test_build_default_settings(self):
        r = self.client.post("/api/build", files=self._upload())
        self.assertEqual(r.status_code, 200)
        self.assertIn("__loopx1", r.headers["content-disposition"])

    def test_invalid_settings(self):
        for settings in ({"loops": 0}, {"detach": {"sweep_y_max": 20}}, {"detach": {"cool_mode": "ice"}}):
            r = self.client.post("/api/build", files=self._upload(), data={"settings": json.dumps(settings)})
            self.assertEqual(r.status_code, 422, settings)

    def test_malformed_settings_json(self):
        r = self.client.post("/api/build", files=self._upload(), data={"settings": "{loops"})
        self.assertEqual(r.status_code, 422)

    def test_build_not_an_archive(self):
        r = self.client.post("/api/build", files=self._upload(b"G28\n"))
        self.assertEqual(r.status_code, 400)
        self.assertIn("PK", r.json()["detail"])

    def test_build_damaged_plate(self):
        r = self.client.post("/api/build", files=self._upload(damage_payload(self.source)))
        self.assertEqual(r.status_code, 400)
        self.assertIn("Metadata/plate_1.gcode", r.json()["detail"])

    def test_inspect_damaged_plate(self):
        r = self.client.post("/api/inspect", files=self._upload(damage_payload(self.source)))
        self.assertEqual(r.status_code, 400)

    def test_build_missing_markers(self):
        r = self.client.post("/api/build", files=self._upload(make_3mf(b"G28\n")))
        self.assertEqual(r.status_code, 400)
        self.assertIn("HEADER/CONFIG", r.json()["detail"])


if __name__ == "__main__":
    unittest.main()
