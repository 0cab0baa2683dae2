"""Tests for vision prompts, the image job store and the sketch renderer."""

import base64
import io
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from PIL import Image

from gardenstudio.services import image_jobs, sketch, vision

from conftest import USER_ID, rect_design, placement


class TestPrompts:
    def test_plan_prompt_groups_by_category(self):
        design = rect_design(placements=[
            placement("lantana", 30, 30),
            placement("lantana", 60, 30),
            placement("crape-myrtle", 60, 50),
            placement("triffid", 1, 1),
        ])
        prompt = vision.build_plan_prompt(design)
        assert prompt.startswith("GARDEN BED SPECIFICATIONS:")
        assert "- Shape: rectangular mulch bed" in prompt
        assert "- Size: 10ft x 5ft canvas area" in prompt
        assert "- Total plants: 4" in prompt
        assert "MIDDLE ROW (medium shrubs 2-4ft): 2x Lantana (2-4ft tall, green foliage, blooms Spring-Fall)" in prompt
        assert prompt.index("FOCAL/SPECIMEN") < prompt.index("MIDDLE ROW")
        assert "FRONT ROW" not in prompt

    @pytest.mark.parametrize("season,word", [("spring", "spring"), ("summer", "summer"), ("fall", "autumn"),
                                             (None, "spring"), ("winter", "spring")])
    def test_image_prompt_season(self, season, word):
        assert vision.build_image_prompt("A bed", season).startswith(f"Residential front yard garden bed, {word}. A bed.")

    def test_image_prompt_truncates(self):
        prompt = vision.build_image_prompt("x" * 900)
        assert "x" * 500 + "..." in prompt
        assert "x" * 501 not in prompt
        assert len(prompt) <= vision.MAX_FULL_PROMPT


class TestGenerateImage:
    def test_no_key(self, app):
        with app.app_context():
            assert vision.generate_image("A bed") == (None, "OpenAI API key not configured")
            assert not vision.is_configured()

    @patch("litellm.image_generation")
    def test_success(self, image_generation, app):
        app.config.update(OPENAI_API_KEY="sk-test", VISION_MODEL="dall-e-3")
        image_generation.return_value = SimpleNamespace(
            data=[SimpleNamespace(url="https://images.example.com/1.png", revised_prompt="lush bed")],
        )
        with app.app_context():
            assert vision.generate_image("A bed", "fall") == (
                {"image_url": "https://images.example.com/1.png", "revised_prompt": "lush bed"}, None,
            )
        kwargs = image_generation.call_args.kwargs
        assert kwargs["model"] == "dall-e-3"
        assert kwargs["api_key"] == "sk-test"
        assert "autumn" in kwargs["prompt"]

    @patch("litellm.image_generation", side_effect=RuntimeError("rate limited"))
    def test_failure_is_logged_not_returned(self, _image_generation, monkeypatch, caplog):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        with caplog.at_level("WARNING", logger="gardenstudio.services.vision"):
            assert vision.generate_image("A bed") == (None, "Failed to generate image")
        assert "rate limited" in caplog.text

    @patch("litellm.image_generation")
    def test_missing_url(self, image_generation, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-env")
        image_generation.return_value = SimpleNamespace(data=[SimpleNamespace(url=None)])
        assert vision.generate_image("A bed") == (None, "Image response had no URL")


class TestImageJobs:
    @patch("gardenstudio.services.vision.generate_image")
    def test_run_stores_result_and_reads_once(self, generate_image, app):
        generate_image.return_value = ({"image_url": "https://images.example.com/2.png", "revised_prompt": None}, None)
        image_jobs._run(app, "a" * 32, USER_ID, "A bed", "summer")

        record = image_jobs.status("a" * 32)
        assert record["status"] == "complete"
        assert record["image_url"] == "https://images.example.com/2.png"
        assert record["season"] == "summer"
        assert image_jobs.status("a" * 32) == {"status": "pending"}

    @patch("gardenstudio.services.vision.generate_image", return_value=(None, "Failed to generate image"))
    def test_run_stores_error(self, _generate_image, app):
        image_jobs._run(app, "b" * 32, USER_ID, "A bed", "spring")
        assert image_jobs.status("b" * 32)["error"] == "Failed to generate image"

    @patch("gardenstudio.services.vision.generate_image")
    def test_each_job_keeps_its_own_error(self, generate_image, app, caplog):
        generate_image.side_effect = [(None, "Image response had no URL"), (None, "Failed to generate image")]
        with caplog.at_level("WARNING"):
            image_jobs._run(app, "e" * 32, USER_ID, "A bed", "spring")
            image_jobs._run(app, "f" * 32, None, "A bed", "fall")

        assert image_jobs.status("e" * 32)["error"] == "Image response had no URL"
        assert image_jobs.status("f" * 32)["error"] == "Failed to generate image"
        assert f"for user {USER_ID} failed" in caplog.text
        assert "for user guest failed" in caplog.text

    def test_submit_queues_pending_job(self, app):
        executor = MagicMock()
        with app.app_context(), patch.object(image_jobs, "_get_executor", return_value=executor):
            job_id = image_jobs.submit(USER_ID, "A bed", "fall")

        assert len(job_id) == 32
        args = executor.submit.call_args.args
        assert args[0] is image_jobs._run
        assert args[1] is app
        assert args[2:] == (job_id, USER_ID, "A bed", "fall")
        # Pending jobs stay readable
        assert image_jobs.status(job_id)["status"] == "pending"
        assert "created_at" in image_jobs.status(job_id)

    def test_unknown_job_is_pending(self, app):
        assert image_jobs.status("c" * 32) == {"status": "pending"}

    def test_purge_and_clear(self, app):
        image_jobs._store("d" * 32, {"status": "pending"})
        assert image_jobs.purge() == 1
        image_jobs.clear()
        assert image_jobs.purge() == 0


def _decode(png_bytes):
    return Image.open(io.BytesIO(png_bytes)).convert("RGB")


class TestSketch:
    def test_empty_bed(self):
        img = _decode(sketch.render_sketch(rect_design()))
        assert img.size == (512, 512)
        assert img.getpixel((256, 256)) == sketch.MULCH
        assert img.getpixel((256, 20)) == sketch.WHITE

    def test_plant_uses_category_color(self):
        img = _decode(sketch.render_sketch(rect_design(placements=[placement("lantana", 60, 30)])))
        assert img.getpixel((256, 256)) == sketch.CATEGORY_COLORS["middle"]

    def test_custom_bed(self):
        path = [{"x": 0, "y": 0}, {"x": 120, "y": 0}, {"x": 120, "y": 120}, {"x": 0, "y": 120}]
        design = {"bed": {"type": "custom", "width_ft": 10, "height_ft": 10, "path": path}, "placements": []}
        img = _decode(sketch.render_sketch(design))
        assert img.getpixel((256, 256)) == sketch.MULCH

    def test_watermark_changes_image(self):
        design = rect_design()
        assert sketch.render_sketch(design, watermark=True) != sketch.render_sketch(design)

    def test_data_url(self):
        url = sketch.sketch_data_url(rect_design())
        assert url.startswith("data:image/png;base64,")
        assert base64.b64decode(url.split(",", 1)[1])[:8] == b"\x89PNG\r\n\x1a\n"
