"""Tests for orion_ai/tools.py."""

import base64
import io
import unittest
import wave
from unittest import mock

from orion_ai.errors import RequestFailed
from orion_ai.file_handler import Attachment
from orion_ai.gemini_api import GeminiAPIError
from orion_ai.tools import (
    IMAGE_STYLES,
    MAX_VIDEO_BYTES,
    NO_AUDIO,
    VIDEO_TOO_LARGE,
    analyze_video,
    check_video_size,
    generate_image,
    pcm_to_wav,
    run_image_studio,
    safe_filename,
    styled_prompt,
    synthesize_speech,
)

PNG = Attachment(data="QUJD", mime_type="image/png", name="cat.png")


class TestImageGeneration(unittest.TestCase):

    def test_styled_prompt(self) -> None:
        self.assertEqual(
            styled_prompt("a fox", "Anime"),
            f"{IMAGE_STYLES['Anime']} of a fox",
        )

    def test_safe_filename(self) -> None:
        self.assertEqual(safe_filename("A Cat, on Mars!"), "a_cat__on_mars_")
        self.assertEqual(len(safe_filename("x" * 80)), 30)
        self.assertEqual(safe_filename(""), "image")

    def test_generate_image_decodes_bytes(self) -> None:
        client = mock.Mock()
        client.generate_image.return_value = base64.b64encode(b"JPEG").decode()
        self.assertEqual(
            generate_image(client, "a fox", "Cinematic", "Portrait (9:16)"),
            b"JPEG",
        )
        prompt, aspect = client.generate_image.call_args.args
        self.assertTrue(prompt.endswith(" of a fox"))
        self.assertEqual(aspect, "9:16")

    def test_generate_image_failure(self) -> None:
        client = mock.Mock()
        client.generate_image.side_effect = GeminiAPIError("No image data")
        with self.assertRaises(RequestFailed) as ctx:
            generate_image(client, "a fox")
        self.assertTrue(str(ctx.exception).startswith(
            "Failed to generate image: "))


class TestImageStudio(unittest.TestCase):

    def test_analyze(self) -> None:
        client = mock.Mock()
        client.analyze_image.return_value = "A cat."
        result = run_image_studio(client, "analyze", "What is it?", PNG)
        self.assertEqual(result.text, "A cat.")
        self.assertIsNone(result.image)
        client.analyze_image.assert_called_once_with("What is it?", "QUJD",
                                                     "image/png")

    def test_edit(self) -> None:
        client = mock.Mock()
        client.edit_image.return_value = base64.b64encode(b"PNGDATA").decode()
        result = run_image_studio(client, "edit", "add a hat", PNG)
        self.assertEqual(result.image, b"PNGDATA")
        self.assertIsNone(result.text)

    def test_unknown_mode(self) -> None:
        with self.assertRaises(ValueError):
            run_image_studio(mock.Mock(), "upscale", "x", PNG)

    def test_failure(self) -> None:
        client = mock.Mock()
        client.edit_image.side_effect = GeminiAPIError("No image data")
        with self.assertRaises(RequestFailed):
            run_image_studio(client, "edit", "add a hat", PNG)


class TestVideo(unittest.TestCase):

    def test_size_limit(self) -> None:
        check_video_size(MAX_VIDEO_BYTES)
        with self.assertRaises(ValueError) as ctx:
            check_video_size(MAX_VIDEO_BYTES + 1)
        self.assertEqual(str(ctx.exception), VIDEO_TOO_LARGE)

    def test_analyze_video(self) -> None:
        client = mock.Mock()
        client.analyze_video.return_value = "A dog runs."
        video = Attachment(data="AAAA", mime_type="video/mp4")
        self.assertEqual(analyze_video(client, "What happens?", video),
                         "A dog runs.")

    def test_analyze_video_failure(self) -> None:
        client = mock.Mock()
        client.analyze_video.side_effect = GeminiAPIError("HTTP 500")
        with self.assertRaises(RequestFailed):
            analyze_video(client, "?", Attachment("AAAA", "video/mp4"))


class TestSpeech(unittest.TestCase):

    def test_pcm_to_wav_header(self) -> None:
        pcm = b"\x00\x01" * 240
        wav = pcm_to_wav(pcm)
        self.assertEqual(wav[:4], b"RIFF")
        self.assertEqual(wav[8:12], b"WAVE")
        with wave.open(io.BytesIO(wav)) as reader:
            self.assertEqual(reader.getframerate(), 24_000)
            self.assertEqual(reader.getnchannels(), 1)
            self.assertEqual(reader.getsampwidth(), 2)
            self.assertEqual(reader.readframes(240), pcm)

    def test_synthesize_speech(self) -> None:
        client = mock.Mock()
        client.generate_speech.return_value = base64.b64encode(
            b"\x00\x00" * 10).decode()
        wav = synthesize_speech(client, "Hello")
        self.assertEqual(wav[:4], b"RIFF")

    def test_synthesize_speech_without_audio(self) -> None:
        client = mock.Mock()
        client.generate_speech.return_value = None
        with self.assertRaises(RequestFailed) as ctx:
            synthesize_speech(client, "Hello")
        self.assertIn(NO_AUDIO, str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
