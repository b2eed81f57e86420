import unittest
from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from fastapi.testclient import TestClient

from tests.helpers import SAMPLE_RESUME_TEXT, auth_headers, make_user

from app.db.analyses import create_analysis, get_analysis  # noqa: E402
from app.db.store import utc_now  # noqa: E402
from app.main import app  # noqa: E402
from app.parsing.parse import parse_text  # noqa: E402
from app.scoring.ats import calculate_score  # noqa: E402
from app.scoring.recommendations import generate_recommendations  # noqa: E402
from app.services.reports import generate_report, regenerate_link, render_report_pdf  # noqa: E402
from app.storage.object_store import get_object_store  # noqa: E402


def _analysis_for(user):
    parsed = parse_text(SAMPLE_RESUME_TEXT)
    score = calculate_score(parsed)
    return create_analysis(
        user_id=user.id,
        file_key=f"resumes/{user.id}/1700000000000-0123456789abcdef.pdf",
        file_name="resume.pdf",
        file_size=1234,
        mime_type="application/pdf",
        score=score,
        parsed=parsed.model_dump(),
        recommendations=generate_recommendations(score, parsed),
    )


class ReportServiceTests(unittest.TestCase):
    def test_render_produces_pdf(self):
        analysis = _analysis_for(make_user())
        content = render_report_pdf(analysis, "free")
        self.assertTrue(content.startswith(b"%PDF"))
        self.assertGreater(len(content), 1000)

    def test_generate_is_cached_until_content_changes(self):
        analysis = _analysis_for(make_user())
        first = generate_report(analysis, "free")
        self.assertTrue(first["regenerated"])
        stored = get_analysis(analysis.id)
        self.assertTrue(stored.report_key.startswith(f"reports/{analysis.user_id}/"))

        second = generate_report(stored, "free")
        self.assertTrue(second["cached"])
        self.assertEqual(second["reportUrl"], first["reportUrl"])

        premium = generate_report(get_analysis(analysis.id), "premium")
        self.assertTrue(premium["regenerated"])
        self.assertNotEqual(get_analysis(analysis.id).report_key, stored.report_key)

    def test_expired_link_is_refreshed_without_rerender(self):
        analysis = _analysis_for(make_user())
        generate_report(analysis, "free")
        stored = get_analysis(analysis.id)
        later = utc_now() + timedelta(days=8)
        refreshed = generate_report(stored, "free", now=later)
        self.assertFalse(refreshed["cached"])
        self.assertFalse(refreshed["regenerated"])
        self.assertEqual(get_analysis(analysis.id).report_key, stored.report_key)

    def test_regenerating_link_twice_keeps_the_same_document(self):
        analysis = _analysis_for(make_user())
        generate_report(analysis, "free")
        stored = get_analysis(analysis.id)
        store = get_object_store()
        original_bytes = store.get_object(stored.report_key)

        first = regenerate_link(get_analysis(analysis.id))
        second = regenerate_link(get_analysis(analysis.id))
        self.assertNotEqual(first["reportUrl"], second["reportUrl"])
        after = get_analysis(analysis.id)
        self.assertEqual(after.report_key, stored.report_key)
        self.assertEqual(store.get_object(after.report_key), original_bytes)


class ReportApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def test_generate_preview_and_download(self):
        user = make_user()
        analysis = _analysis_for(user)
        headers = auth_headers(user)

        preview = self.client.get(f"/api/reports/preview/{analysis.id}", headers=headers)
        self.assertEqual(preview.status_code, 200)
        self.assertEqual(preview.json()["data"]["overview"]["totalScore"], analysis.total_score)
        self.assertFalse(preview.json()["data"]["hasReport"])

        response = self.client.post(f"/api/reports/generate/{analysis.id}", headers=headers)
        self.assertEqual(response.status_code, 200)
        url = urlparse(response.json()["data"]["reportUrl"])
        download = self.client.get(url.path, params={k: v[0] for k, v in parse_qs(url.query).items()})
        self.assertEqual(download.status_code, 200)
        self.assertTrue(download.content.startswith(b"%PDF"))

        tampered = self.client.get(url.path, params={"expires": 9999999999, "nonce": "00", "signature": "bad"})
        self.assertEqual(tampered.status_code, 403)

    def test_regenerate_link_before_generation(self):
        user = make_user()
        analysis = _analysis_for(user)
        response = self.client.post(f"/api/reports/regenerate-link/{analysis.id}", headers=auth_headers(user))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"]["code"], "REPORT_NOT_GENERATED")

    def test_reports_are_owner_only(self):
        analysis = _analysis_for(make_user())
        response = self.client.post(f"/api/reports/generate/{analysis.id}", headers=auth_headers(make_user()))
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
