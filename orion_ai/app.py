"""
Main GUI application — OrionAI Desktop.

Layout
------
┌──────────────┬──────────────────────────────────────────┐
│ OrionAI      │                                          │
│ [+ New Chat] │                                          │
│ Chats        │   Active panel (chosen by the sidebar)   │
│  • Hello     │   Chat / Image Gen / Image Studio /      │
│  • …         │   Video / Audio / TTS / About / Contact  │
│ [🗑 Delete]  │                                          │
│ Tools        │                                          │
│  Chat …      │                                          │
│ Information  │                                          │
│ (alice) [⏻]  │                                          │
└──────────────┴──────────────────────────────────────────┘

All API calls run on daemon threads; their results come back through a
queue that the Tk main loop drains every 40 ms, so the session store is only
ever touched from the UI thread.
"""

import io
import logging
import os
import threading
import tkinter as tk
import webbrowser
from tkinter import filedialog, messagebox, scrolledtext, ttk

from PIL import Image, ImageTk

from .account import Account
from .audio import Recorder, append_transcript, transcribe
from .auth import AuthGate
from .chat_store import SessionStore
from .config import load_settings
from .dispatcher import ChatDispatcher, PendingRequest
from .errors import OrionError, RequestFailed
from .events import EventQueue
from .file_handler import (
    AUDIO_PATTERNS,
    IMAGE_PATTERNS,
    VIDEO_PATTERNS,
    Attachment,
    read_attachment,
)
from .gemini_api import DEFAULT_MODEL, MODELS, GeminiClient
from .paths import asset_path
from .storage import KeyValueStore
from .tools import (
    ASPECT_RATIOS,
    IMAGE_STYLES,
    VIDEO_TOO_LARGE,
    analyze_video,
    check_video_size,
    generate_image,
    run_image_studio,
    safe_filename,
    synthesize_speech,
)
from .views import SECTIONS, VIEW_INFO, AppView, ViewRouter, views_in

log = logging.getLogger("orion_ai")

APP_TITLE = "OrionAI"
PREVIEW_SIZE = (420, 420)
THUMB_SIZE = (80, 80)


def _photo(raw_path_or_bytes, size) -> ImageTk.PhotoImage:
    """Return a Tk image scaled to fit *size*."""
    if isinstance(raw_path_or_bytes, bytes):
        img = Image.open(io.BytesIO(raw_path_or_bytes))
    else:
        img = Image.open(raw_path_or_bytes)
    img.thumbnail(size)
    return ImageTk.PhotoImage(img)


# ---------------------------------------------------------------------------
# Auth screen
# ---------------------------------------------------------------------------

class _AuthFrame(ttk.Frame):
    """Sign-in / register form."""

    def __init__(self, parent: tk.Widget, app: "OrionApp",
                 error: str = "") -> None:
        super().__init__(parent, padding=40)
        self._app = app
        self._is_login = True

        ttk.Label(self, text=f"✦ {APP_TITLE}",
                  font=("", 22, "bold")).pack(pady=(0, 6))
        self._heading = ttk.Label(self, text="Welcome Back", font=("", 13))
        self._heading.pack(pady=(0, 16))

        form = ttk.Frame(self)
        form.pack()
        ttk.Label(form, text="Username").grid(row=0, column=0, sticky="w")
        self._user_var = tk.StringVar()
        user_entry = ttk.Entry(form, textvariable=self._user_var, width=32)
        user_entry.grid(row=1, column=0, pady=(0, 8))
        ttk.Label(form, text="Password").grid(row=2, column=0, sticky="w")
        self._pw_var = tk.StringVar()
        pw_entry = ttk.Entry(form, textvariable=self._pw_var, show="•",
                             width=32)
        pw_entry.grid(row=3, column=0)
        pw_entry.bind("<Return>", lambda _e: self._submit())

        self._error = ttk.Label(self, text=error, foreground="#c0392b")
        self._error.pack(pady=8)

        self._submit_btn = ttk.Button(self, text="Sign in",
                                      command=self._submit)
        self._submit_btn.pack(fill=tk.X, padx=60)
        self._toggle_btn = ttk.Button(self, text="Need an account? Register",
                                      command=self._toggle)
        self._toggle_btn.pack(pady=(8, 0))
        user_entry.focus_set()

    def _toggle(self) -> None:
        self._is_login = not self._is_login
        self._error.config(text="")
        if self._is_login:
            self._heading.config(text="Welcome Back")
            self._submit_btn.config(text="Sign in")
            self._toggle_btn.config(text="Need an account? Register")
        else:
            self._heading.config(text="Create an Account")
            self._submit_btn.config(text="Register")
            self._toggle_btn.config(text="Already have an account? Sign in")

    def _submit(self) -> None:
        account = self._app.account
        action = account.login if self._is_login else account.register
        try:
            action(self._user_var.get(), self._pw_var.get())
        except OrionError as exc:
            self._error.config(text=str(exc))
            return
        self._app.on_logged_in()


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------

class _Panel(ttk.Frame):
    """Base for tool panels: title, description and an inline error line."""

    title = ""
    description = ""

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, padding=12)
        self._app = app
        ttk.Label(self, text=self.title,
                  font=("", 15, "bold")).pack(anchor="w")
        if self.description:
            ttk.Label(self, text=self.description, foreground="#666",
                      wraplength=640).pack(anchor="w", pady=(2, 8))
        self._error = ttk.Label(self, text="", foreground="#c0392b",
                                wraplength=640)

    def show_error(self, text: str | None) -> None:
        if text:
            self._error.config(text=text)
            self._error.pack(anchor="w", pady=4)
        else:
            self._error.pack_forget()

    def _set_busy(self, button: ttk.Button, busy: bool,
                  idle_text: str) -> None:
        button.config(state=tk.DISABLED if busy else tk.NORMAL,
                      text="Working…" if busy else idle_text)


class _ChatPanel(_Panel):
    title = "OrionAI Chat"

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        self._attachment: Attachment | None = None
        self._thumb: ImageTk.PhotoImage | None = None

        # ---- Options row -----------------------------------------------
        opts = ttk.Frame(self)
        opts.pack(fill=tk.X, pady=(4, 6))
        labels = {v: k for k, v in MODELS.items()}
        self._model_var = tk.StringVar(value=labels[DEFAULT_MODEL])
        ttk.Combobox(opts, textvariable=self._model_var, state="readonly",
                     values=list(MODELS.keys()), width=18).pack(side=tk.LEFT)
        self._search_var = tk.BooleanVar(value=False)
        self._maps_var = tk.BooleanVar(value=False)
        ttk.Checkbutton(opts, text="Google Search",
                        variable=self._search_var).pack(side=tk.LEFT, padx=10)
        ttk.Checkbutton(opts, text="Google Maps",
                        variable=self._maps_var).pack(side=tk.LEFT)
        ttk.Button(opts, text="Copy last reply",
                   command=self._copy_last_reply).pack(side=tk.RIGHT)

        # ---- Transcript ------------------------------------------------
        self._chat = scrolledtext.ScrolledText(
            self, wrap=tk.WORD, state=tk.DISABLED, font=("", 10),
            relief=tk.SUNKEN, borderwidth=1, height=18,
        )
        self._chat.pack(fill=tk.BOTH, expand=True)
        self._chat.tag_config("user_lbl", foreground="#005cc5",
                              font=("", 10, "bold"))
        self._chat.tag_config("asst_lbl", foreground="#6f42c1",
                              font=("", 10, "bold"))
        self._chat.tag_config("src_lbl", foreground="#6c757d",
                              font=("", 9, "bold"))
        self._chat.tag_config("sys_msg", foreground="#6c757d",
                              font=("", 9, "italic"))
        self._chat.tag_config("link", foreground="#0055cc", underline=True)
        self._chat.tag_bind("link", "<Enter>",
                            lambda _e: self._chat.config(cursor="hand2"))
        self._chat.tag_bind("link", "<Leave>",
                            lambda _e: self._chat.config(cursor=""))

        # ---- Attachment chip (hidden when empty) -----------------------
        self._attach_frame = ttk.Frame(self)
        self._attach_img = ttk.Label(self._attach_frame)
        self._attach_img.pack(side=tk.LEFT)
        self._attach_name = ttk.Label(self._attach_frame, font=("", 9))
        self._attach_name.pack(side=tk.LEFT, padx=4)
        ttk.Button(self._attach_frame, text="✕", width=2,
                   command=self._clear_attachment).pack(side=tk.LEFT)

        # ---- Input row -------------------------------------------------
        self._input_row = ttk.Frame(self)
        self._input_row.pack(fill=tk.X, pady=(6, 0))
        ttk.Button(self._input_row, text="📎", width=3,
                   command=self._attach).pack(side=tk.LEFT)
        self._mic_btn = ttk.Button(self._input_row, width=3,
                                   text="⏹" if app.recorder.recording else "🎤",
                                   command=self._toggle_mic)
        self._mic_btn.pack(side=tk.LEFT, padx=(2, 6))
        self._input = tk.Text(self._input_row, height=3, wrap=tk.WORD,
                              font=("", 10))
        self._input.pack(side=tk.LEFT, fill=tk.X, expand=True)
        self._input.bind("<Return>", self._on_enter_key)
        self._send_btn = ttk.Button(self._input_row, text="Send ➤",
                                    command=self._send)
        self._send_btn.pack(side=tk.LEFT, padx=(6, 0))

        self.render()
        self.show_error(app.chat_error)
        self.set_busy(app.chat_busy)

    # -- rendering --------------------------------------------------------

    def render(self) -> None:
        session = self._app.sessions.active()
        messages = session.messages if session else []
        self._chat.config(state=tk.NORMAL)
        self._chat.delete("1.0", tk.END)
        if not messages:
            self._chat.insert(
                tk.END,
                "Welcome to OrionAI. How can I help you today? 😊",
                "sys_msg",
            )
        for idx, msg in enumerate(messages):
            if idx:
                self._chat.insert(tk.END, "\n\n")
            if msg.role == "user":
                self._chat.insert(tk.END, "You:\n", "user_lbl")
            else:
                self._chat.insert(tk.END, "OrionAI:\n", "asst_lbl")
            self._chat.insert(tk.END, msg.content)
            if msg.sources:
                self._chat.insert(tk.END, "\nSources:\n", "src_lbl")
                for n, src in enumerate(msg.sources):
                    tag = f"link-{idx}-{n}"
                    self._chat.insert(tk.END, f"  {src.title or src.uri}\n",
                                      ("link", tag))
                    self._chat.tag_bind(
                        tag, "<Button-1>",
                        lambda _e, uri=src.uri: webbrowser.open(uri),
                    )
        if self._app.chat_busy:
            self._chat.insert(tk.END, "\n\nOrionAI is thinking…", "sys_msg")
        self._chat.config(state=tk.DISABLED)
        self._chat.see(tk.END)

    def set_busy(self, busy: bool) -> None:
        self._send_btn.config(state=tk.DISABLED if busy else tk.NORMAL)

    # -- input ------------------------------------------------------------

    def _on_enter_key(self, event: tk.Event) -> str | None:
        # Shift+Enter → insert a newline (default behaviour)
        if event.state & 0x1:
            return None
        self._send()
        return "break"

    def _send(self) -> None:
        text = self._input.get("1.0", tk.END).rstrip("\n")
        if (not text.strip() and self._attachment is None) \
                or self._app.chat_busy:
            return
        attachment = self._attachment
        self._input.delete("1.0", tk.END)
        self._clear_attachment()
        self._app.send_chat(
            text,
            model=MODELS[self._model_var.get()],
            use_search=self._search_var.get(),
            use_maps=self._maps_var.get(),
            attachment=attachment,
        )

    def _attach(self) -> None:
        path = filedialog.askopenfilename(
            title="Add photos & files",
            filetypes=[("Images", IMAGE_PATTERNS), ("All files", "*.*")],
        )
        if not path:
            return
        try:
            self._attachment = read_attachment(path)
        except OSError as exc:
            log.warning("[APP] Cannot read %s: %s", path, exc)
            self.show_error("Failed to read file.")
            return
        try:
            self._thumb = _photo(path, THUMB_SIZE)
            self._attach_img.config(image=self._thumb)
        except OSError:
            self._thumb = None
            self._attach_img.config(image="")
        self._attach_name.config(text=self._attachment.name)
        self._attach_frame.pack(fill=tk.X, pady=(6, 0), before=self._input_row)

    def _clear_attachment(self) -> None:
        self._attachment = None
        self._thumb = None
        self._attach_frame.pack_forget()

    def _copy_last_reply(self) -> None:
        session = self._app.sessions.active()
        replies = [m for m in (session.messages if session else [])
                   if m.role == "assistant"]
        if replies:
            self.clipboard_clear()
            self.clipboard_append(replies[-1].content)

    # -- microphone -------------------------------------------------------

    def _toggle_mic(self) -> None:
        recorder = self._app.recorder
        if recorder.recording:
            audio = recorder.stop()
            self._mic_btn.config(text="🎤")
            if not audio:
                return
            data = Attachment.from_bytes(audio, recorder.mime_type)
            self._app.run_async(
                lambda client: transcribe(client, data.data, data.mime_type),
                self._on_transcript,
                self.show_error,
            )
            return
        self.show_error(None)
        try:
            recorder.start()
        except OrionError as exc:
            self.show_error(str(exc))
            return
        self._mic_btn.config(text="⏹")

    def _on_transcript(self, text: str) -> None:
        current = self._input.get("1.0", tk.END).rstrip("\n")
        self._input.delete("1.0", tk.END)
        self._input.insert(tk.END, append_transcript(current, text))


class _ImageGenPanel(_Panel):
    title = "Image Generator"
    description = ("Describe what you want to create, then choose your "
                   "preferred image style.")

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        self._image: bytes | None = None
        self._photo: ImageTk.PhotoImage | None = None

        self._prompt = tk.Text(self, height=3, wrap=tk.WORD, font=("", 10))
        self._prompt.pack(fill=tk.X)

        row = ttk.Frame(self)
        row.pack(fill=tk.X, pady=6)
        self._style_var = tk.StringVar(value=next(iter(IMAGE_STYLES)))
        ttk.Label(row, text="Style:").pack(side=tk.LEFT)
        ttk.Combobox(row, textvariable=self._style_var, state="readonly",
                     values=list(IMAGE_STYLES), width=16).pack(side=tk.LEFT,
                                                               padx=(4, 12))
        self._aspect_var = tk.StringVar(value=next(iter(ASPECT_RATIOS)))
        ttk.Label(row, text="Aspect ratio:").pack(side=tk.LEFT)
        ttk.Combobox(row, textvariable=self._aspect_var, state="readonly",
                     values=list(ASPECT_RATIOS), width=16).pack(side=tk.LEFT,
                                                                padx=4)
        self._go = ttk.Button(row, text="Generate", command=self._generate)
        self._go.pack(side=tk.RIGHT)

        self._preview = ttk.Label(self)
        self._preview.pack(pady=8)
        self._save_btn = ttk.Button(self, text="Download…",
                                    command=self._save, state=tk.DISABLED)
        self._save_btn.pack()

    def _generate(self) -> None:
        prompt = self._prompt.get("1.0", tk.END).strip()
        if not prompt:
            return
        self.show_error(None)
        self._image = None
        self._preview.config(image="")
        self._save_btn.config(state=tk.DISABLED)
        self._set_busy(self._go, True, "Generate")
        style, aspect = self._style_var.get(), self._aspect_var.get()
        self._app.run_async(
            lambda client: generate_image(client, prompt, style, aspect),
            self._done,
            self._failed,
        )

    def _done(self, image: bytes) -> None:
        self._set_busy(self._go, False, "Generate")
        self._image = image
        self._photo = _photo(image, PREVIEW_SIZE)
        self._preview.config(image=self._photo)
        self._save_btn.config(state=tk.NORMAL)

    def _failed(self, text: str) -> None:
        self._set_busy(self._go, False, "Generate")
        self.show_error(text)

    def _save(self) -> None:
        if not self._image:
            return
        stem = safe_filename(self._prompt.get("1.0", tk.END).strip())
        path = filedialog.asksaveasfilename(
            title="Save Image", defaultextension=".jpeg",
            initialfile=f"orionai-{stem}.jpeg",
            filetypes=[("JPEG", "*.jpeg *.jpg")],
        )
        if path:
            with open(path, "wb") as fh:
                fh.write(self._image)


class _ImageStudioPanel(_Panel):
    title = "Image Studio"
    description = ("Upload an image to analyze its contents or edit it "
                   "with a prompt.")

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        self._source: Attachment | None = None
        self._photos: list[ImageTk.PhotoImage] = []

        top = ttk.Frame(self)
        top.pack(fill=tk.X)
        ttk.Button(top, text="Upload image…",
                   command=self._upload).pack(side=tk.LEFT)
        self._mode_var = tk.StringVar(value="analyze")
        ttk.Radiobutton(top, text="Analyze", value="analyze",
                        variable=self._mode_var).pack(side=tk.LEFT, padx=10)
        ttk.Radiobutton(top, text="Edit", value="edit",
                        variable=self._mode_var).pack(side=tk.LEFT)

        self._prompt = ttk.Entry(self)
        self._prompt.pack(fill=tk.X, pady=6)
        self._go = ttk.Button(self, text="Submit", command=self._submit)
        self._go.pack(anchor="e")

        images = ttk.Frame(self)
        images.pack(fill=tk.BOTH, expand=True, pady=6)
        self._original = ttk.Label(images)
        self._original.pack(side=tk.LEFT, padx=6)
        self._result_img = ttk.Label(images)
        self._result_img.pack(side=tk.LEFT, padx=6)
        self._result_text = scrolledtext.ScrolledText(
            self, wrap=tk.WORD, height=8, state=tk.DISABLED, font=("", 10),
        )
        self._result_text.pack(fill=tk.BOTH, expand=True)

    def _upload(self) -> None:
        path = filedialog.askopenfilename(
            title="Upload image",
            filetypes=[("Images", IMAGE_PATTERNS), ("All files", "*.*")],
        )
        if not path:
            return
        self.show_error(None)
        try:
            self._source = read_attachment(path)
            photo = _photo(path, (300, 300))
        except OSError:
            self.show_error("Failed to read file.")
            return
        self._photos = [photo]
        self._original.config(image=photo)
        self._result_img.config(image="")

    def _submit(self) -> None:
        prompt = self._prompt.get().strip()
        if not prompt or self._source is None:
            return
        self.show_error(None)
        self._set_busy(self._go, True, "Submit")
        mode, source = self._mode_var.get(), self._source
        self._app.run_async(
            lambda client: run_image_studio(client, mode, prompt, source),
            self._done,
            self._failed,
        )

    def _done(self, result) -> None:
        self._set_busy(self._go, False, "Submit")
        self._result_text.config(state=tk.NORMAL)
        self._result_text.delete("1.0", tk.END)
        if result.text is not None:
            self._result_text.insert(tk.END, result.text)
        self._result_text.config(state=tk.DISABLED)
        if result.image is not None:
            photo = _photo(result.image, (300, 300))
            self._photos = self._photos[:1] + [photo]
            self._result_img.config(image=photo)

    def _failed(self, text: str) -> None:
        self._set_busy(self._go, False, "Submit")
        self.show_error(text)


class _VideoPanel(_Panel):
    title = "Video Analysis"
    description = "Upload a video (under 50MB) and ask a question about it."

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        self._video: Attachment | None = None

        row = ttk.Frame(self)
        row.pack(fill=tk.X)
        ttk.Button(row, text="Upload video…",
                   command=self._upload).pack(side=tk.LEFT)
        self._name = ttk.Label(row, text="(no video)", foreground="#666")
        self._name.pack(side=tk.LEFT, padx=8)
        ttk.Button(row, text="Clear", command=self._clear).pack(side=tk.RIGHT)

        self._prompt = ttk.Entry(self)
        self._prompt.pack(fill=tk.X, pady=6)
        self._go = ttk.Button(self, text="Analyze", command=self._submit)
        self._go.pack(anchor="e")
        self._result = scrolledtext.ScrolledText(
            self, wrap=tk.WORD, height=14, state=tk.DISABLED, font=("", 10),
        )
        self._result.pack(fill=tk.BOTH, expand=True, pady=6)

    def _upload(self) -> None:
        path = filedialog.askopenfilename(
            title="Upload video",
            filetypes=[("Videos", VIDEO_PATTERNS), ("All files", "*.*")],
        )
        if not path:
            return
        try:
            check_video_size(os.path.getsize(path))
        except ValueError:
            self.show_error(VIDEO_TOO_LARGE)
            return
        except OSError:
            self.show_error("Failed to read file.")
            return
        self.show_error(None)
        try:
            self._video = read_attachment(path, prefer="video")
        except OSError:
            self.show_error("Failed to read file.")
            return
        self._name.config(text=self._video.name)

    def _clear(self) -> None:
        self._video = None
        self._name.config(text="(no video)")
        self._prompt.delete(0, tk.END)
        self._set_result("")
        self.show_error(None)

    def _set_result(self, text: str) -> None:
        self._result.config(state=tk.NORMAL)
        self._result.delete("1.0", tk.END)
        self._result.insert(tk.END, text)
        self._result.config(state=tk.DISABLED)

    def _submit(self) -> None:
        prompt = self._prompt.get().strip()
        if not prompt or self._video is None:
            return
        self.show_error(None)
        self._set_busy(self._go, True, "Analyze")
        video = self._video
        self._app.run_async(
            lambda client: analyze_video(client, prompt, video),
            self._done,
            self._failed,
        )

    def _done(self, text: str) -> None:
        self._set_busy(self._go, False, "Analyze")
        self._set_result(text)

    def _failed(self, text: str) -> None:
        self._set_busy(self._go, False, "Analyze")
        self.show_error(text)


class _TranscriptionPanel(_Panel):
    title = "Audio Transcription"
    description = "Record from your microphone or upload an audio file."

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        row = ttk.Frame(self)
        row.pack(fill=tk.X)
        self._rec_btn = ttk.Button(
            row, command=self._toggle,
            text="⏹ Stop recording" if app.recorder.recording
            else "🎤 Start recording",
        )
        self._rec_btn.pack(side=tk.LEFT)
        self._upload_btn = ttk.Button(row, text="Upload audio…",
                                      command=self._upload)
        self._upload_btn.pack(side=tk.LEFT, padx=8)
        ttk.Button(row, text="Copy", command=self._copy).pack(side=tk.RIGHT)
        self._status = ttk.Label(self, text="", foreground="#666")
        self._status.pack(anchor="w", pady=4)
        self._result = scrolledtext.ScrolledText(
            self, wrap=tk.WORD, height=14, font=("", 10),
        )
        self._result.pack(fill=tk.BOTH, expand=True)

    def _toggle(self) -> None:
        recorder = self._app.recorder
        if recorder.recording:
            audio = recorder.stop()
            self._rec_btn.config(text="🎤 Start recording")
            if audio:
                self._transcribe(Attachment.from_bytes(audio,
                                                       recorder.mime_type))
            return
        self.show_error(None)
        try:
            recorder.start()
        except OrionError as exc:
            self.show_error(str(exc))
            return
        self._rec_btn.config(text="⏹ Stop recording")
        self._status.config(text="Recording…")

    def _upload(self) -> None:
        path = filedialog.askopenfilename(
            title="Upload audio",
            filetypes=[("Audio", AUDIO_PATTERNS), ("All files", "*.*")],
        )
        if not path:
            return
        try:
            audio = read_attachment(path, prefer="audio")
        except OSError:
            self.show_error("Failed to read file.")
            return
        self._transcribe(audio)

    def _transcribe(self, audio: Attachment) -> None:
        self.show_error(None)
        self._status.config(text="Transcribing…")
        self._upload_btn.config(state=tk.DISABLED)
        self._app.run_async(
            lambda client: transcribe(client, audio.data, audio.mime_type),
            self._done,
            self._failed,
        )

    def _done(self, text: str) -> None:
        self._upload_btn.config(state=tk.NORMAL)
        self._status.config(text="")
        self._result.delete("1.0", tk.END)
        self._result.insert(tk.END, text)

    def _failed(self, text: str) -> None:
        self._upload_btn.config(state=tk.NORMAL)
        self._status.config(text="")
        self.show_error(text)

    def _copy(self) -> None:
        text = self._result.get("1.0", tk.END).strip()
        if text:
            self.clipboard_clear()
            self.clipboard_append(text)
            self._status.config(text="Copied to clipboard.")


class _TTSPanel(_Panel):
    title = "Text-to-Speech"
    description = "Type some text and OrionAI will read it aloud."

    OUTPUT_FILE = asset_path("speech.wav")

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        self._wav: bytes | None = None
        self._text = scrolledtext.ScrolledText(self, wrap=tk.WORD, height=10,
                                               font=("", 10))
        self._text.pack(fill=tk.BOTH, expand=True)
        row = ttk.Frame(self)
        row.pack(fill=tk.X, pady=6)
        self._go = ttk.Button(row, text="Generate speech",
                              command=self._speak)
        self._go.pack(side=tk.LEFT)
        self._play_btn = ttk.Button(row, text="▶ Play", state=tk.DISABLED,
                                    command=self._play)
        self._play_btn.pack(side=tk.LEFT, padx=6)
        self._save_btn = ttk.Button(row, text="Save WAV…", state=tk.DISABLED,
                                    command=self._save)
        self._save_btn.pack(side=tk.LEFT)

    def _speak(self) -> None:
        text = self._text.get("1.0", tk.END).strip()
        if not text:
            return
        self.show_error(None)
        self._set_busy(self._go, True, "Generate speech")
        self._app.run_async(
            lambda client: synthesize_speech(client, text),
            self._done,
            self._failed,
        )

    def _done(self, wav: bytes) -> None:
        self._set_busy(self._go, False, "Generate speech")
        self._wav = wav
        with open(self.OUTPUT_FILE, "wb") as fh:
            fh.write(wav)
        self._play_btn.config(state=tk.NORMAL)
        self._save_btn.config(state=tk.NORMAL)
        self._play()

    def _failed(self, text: str) -> None:
        self._set_busy(self._go, False, "Generate speech")
        self.show_error(text)

    def _play(self) -> None:
        # Hands the file to the system's default audio player
        webbrowser.open(f"file://{self.OUTPUT_FILE}")

    def _save(self) -> None:
        if not self._wav:
            return
        path = filedialog.asksaveasfilename(
            title="Save speech", defaultextension=".wav",
            filetypes=[("WAV", "*.wav")],
        )
        if path:
            with open(path, "wb") as fh:
                fh.write(self._wav)


_ABOUT_TEXT = """\
At OrionAI, we believe the future belongs to those who think beyond \
boundaries. Inspired by the Orion constellation, our mission is to illuminate \
the digital universe with powerful, human-like artificial intelligence that \
learns, reasons, and creates.

OrionAI is a conversational assistant that helps with:
  ✨ Smart conversations & content creation
  ⚙️ Coding, analysis, and automation
  🎨 AI-powered design & creativity tools
  📚 Learning support, research, and explanations
  🧠 Personalized productivity assistance

We see AI not as a replacement, but as a companion for human imagination.
"""


class _AboutPanel(_Panel):
    title = "About OrionAI"

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        ttk.Label(self, text=_ABOUT_TEXT, wraplength=640,
                  justify=tk.LEFT).pack(anchor="w")


class _ContactPanel(_Panel):
    title = "Contact Us"
    description = ("We'd love to hear from you! Whether you have a question "
                   "about features, pricing, or anything else, our team is "
                   "ready to answer.")

    RESET_MS = 3000

    def __init__(self, parent: tk.Widget, app: "OrionApp") -> None:
        super().__init__(parent, app)
        self._form = ttk.Frame(self)
        self._form.pack(fill=tk.BOTH, expand=True)
        self._name = ttk.Entry(self._form)
        self._email = ttk.Entry(self._form)
        for label, widget in (("Name", self._name), ("Email", self._email)):
            ttk.Label(self._form, text=label).pack(anchor="w")
            widget.pack(fill=tk.X, pady=(0, 6))
        ttk.Label(self._form, text="Message").pack(anchor="w")
        self._message = tk.Text(self._form, height=6, wrap=tk.WORD)
        self._message.pack(fill=tk.BOTH, expand=True)
        ttk.Button(self._form, text="Send Message",
                   command=self._submit).pack(anchor="e", pady=6)
        self._thanks = ttk.Label(
            self, text="Thank you! Your message has been sent.",
            foreground="#1e8449", font=("", 11, "bold"),
        )

    def _submit(self) -> None:
        self._form.pack_forget()
        self._thanks.pack(pady=20)
        self.after(self.RESET_MS, self._reset)

    def _reset(self) -> None:
        self._thanks.pack_forget()
        for entry in (self._name, self._email):
            entry.delete(0, tk.END)
        self._message.delete("1.0", tk.END)
        self._form.pack(fill=tk.BOTH, expand=True)


# ---------------------------------------------------------------------------
# Main application
# ---------------------------------------------------------------------------

class OrionApp:
    """OrionAI Desktop — main application class."""

    def __init__(self, kv: KeyValueStore | None = None) -> None:
        self.root = tk.Tk()
        self.root.title(APP_TITLE)
        self.root.geometry("1100x720")
        self.root.minsize(820, 540)

        self._kv = kv or KeyValueStore()
        self.sessions = SessionStore(self._kv)
        self.account = Account(AuthGate(self._kv), self.sessions)
        self.recorder = Recorder()
        self._client: GeminiClient | None = None
        self._dispatcher: ChatDispatcher | None = None
        self._events = EventQueue()

        self._router = ViewRouter()
        self._register_panels()
        self._panel: ttk.Frame | None = None
        self._screen: ttk.Frame | None = None
        self._conv_listbox: tk.Listbox | None = None

        # Chat state that outlives the chat panel itself
        self._pending: PendingRequest | None = None
        self.chat_error: str | None = None

        try:
            restored = self.account.restore()
        except OrionError as exc:
            self._show_auth(str(exc))
        else:
            if restored:
                self.on_logged_in()
            else:
                self._show_auth()
        self._pump_queue()
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)

    def _register_panels(self) -> None:
        for view, cls in (
            (AppView.CHAT, _ChatPanel),
            (AppView.IMAGE_GEN, _ImageGenPanel),
            (AppView.IMAGE_EDIT, _ImageStudioPanel),
            (AppView.VIDEO_ANALYSIS, _VideoPanel),
            (AppView.AUDIO_TRANSCRIPTION, _TranscriptionPanel),
            (AppView.TTS, _TTSPanel),
            (AppView.ABOUT, _AboutPanel),
            (AppView.CONTACT, _ContactPanel),
        ):
            self._router.register(
                view, lambda parent, c=cls: c(parent, self),
            )
        missing = self._router.missing()
        if missing:
            raise LookupError(f"views without a panel: {missing}")

    # ------------------------------------------------------------------
    # Client
    # ------------------------------------------------------------------

    def _get_client(self) -> GeminiClient:
        """Create the API client on first use.

        Raises
        ------
        ConfigError
            When no API key is configured.
        """
        if self._client is None:
            settings = load_settings()
            self._client = GeminiClient(settings.api_key, settings.api_base,
                                        settings.timeout)
        return self._client

    def _get_dispatcher(self) -> ChatDispatcher:
        if self._dispatcher is None:
            self._dispatcher = ChatDispatcher(
                self.sessions, self._get_client(),
                on_location_error=lambda msg: self._events.post(
                    "chat_error", msg),
            )
        return self._dispatcher

    def run_async(self, job, on_done, on_error) -> None:
        """Run ``job(client)`` on a worker thread.

        *on_done(result)* or *on_error(text)* is later called on the UI
        thread.
        """
        try:
            client = self._get_client()
        except OrionError as exc:
            on_error(str(exc))
            return

        def _worker() -> None:
            try:
                result = job(client)
            except OrionError as exc:
                self._events.post("call", (on_error, str(exc)))
            except Exception as exc:  # noqa: BLE001
                log.error("[APP] Unexpected error in worker", exc_info=True)
                self._events.post(
                    "call", (on_error, f"{type(exc).__name__}: {exc}"))
            else:
                self._events.post("call", (on_done, result))

        threading.Thread(target=_worker, daemon=True).start()

    # ------------------------------------------------------------------
    # Event pump (bridges worker thread → main thread)
    # ------------------------------------------------------------------

    def _pump_queue(self) -> None:
        try:
            self._events.drain(self._handle_event, self._on_event_error)
        finally:
            self.root.after(40, self._pump_queue)

    def _handle_event(self, kind: str, payload) -> None:
        if kind == "call":
            callback, value = payload
            callback(value)
        elif kind == "reply":
            pending, response = payload
            self._save_guard(
                lambda: self._get_dispatcher().complete(pending, response))
            self._finish_chat(pending, None)
        elif kind == "failed":
            pending, exc = payload
            text = self._save_guard(
                lambda: self._get_dispatcher().fail(pending, exc))
            self._finish_chat(pending, text or str(exc))
        elif kind == "chat_error":
            self.chat_error = payload
            if isinstance(self._panel, _ChatPanel):
                self._panel.show_error(payload)

    def _on_event_error(self, kind: str, payload, exc: Exception) -> None:
        text = f"{type(exc).__name__}: {exc}"
        if kind in ("reply", "failed"):
            self._finish_chat(payload[0], text)
        elif isinstance(exc, tk.TclError):
            # The panel was closed while the job was running
            log.debug("[APP] Result for a closed panel dropped")
        elif kind == "call":
            owner = getattr(payload[0], "__self__", None)
            if isinstance(owner, _Panel) and owner.winfo_exists():
                owner.show_error(text)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _clear_screen(self) -> None:
        if self._screen is not None:
            self._screen.destroy()
        self._screen = None
        self._panel = None
        self._conv_listbox = None

    def _show_auth(self, error: str = "") -> None:
        self._clear_screen()
        self._screen = _AuthFrame(self.root, self, error)
        self._screen.pack(fill=tk.BOTH, expand=True)

    def on_logged_in(self) -> None:
        """Show the main layout for the user whose sessions just loaded."""
        self.chat_error = None
        self._router.select(AppView.CHAT)
        self._show_main()

    def _logout(self) -> None:
        try:
            self.account.logout()
        except OrionError as exc:
            messagebox.showerror("Logout Failed", str(exc), parent=self.root)
            return
        self._show_auth()

    # ------------------------------------------------------------------
    # Main layout
    # ------------------------------------------------------------------

    def _show_main(self) -> None:
        self._clear_screen()
        screen = ttk.PanedWindow(self.root, orient=tk.HORIZONTAL)
        screen.pack(fill=tk.BOTH, expand=True)
        self._screen = screen

        sidebar = ttk.Frame(screen, width=240, padding=6)
        screen.add(sidebar, weight=0)
        ttk.Label(sidebar, text=f"✦ {APP_TITLE}",
                  font=("", 16, "bold")).pack(pady=(0, 8))
        ttk.Button(sidebar, text="+ New Chat",
                   command=self._new_chat).pack(fill=tk.X)

        ttk.Label(sidebar, text="CHATS", foreground="#888",
                  font=("", 8, "bold")).pack(anchor="w", pady=(8, 2))
        self._conv_listbox = tk.Listbox(sidebar, selectmode=tk.SINGLE,
                                        font=("", 10), activestyle="none",
                                        height=10)
        self._conv_listbox.pack(fill=tk.BOTH, expand=True)
        self._conv_listbox.bind("<<ListboxSelect>>", self._on_conv_selected)
        self._conv_listbox.bind("<Delete>", lambda _e: self._delete_chat())
        ttk.Button(sidebar, text="🗑 Delete Chat",
                   command=self._delete_chat).pack(fill=tk.X, pady=(2, 6))

        for section in SECTIONS:
            ttk.Label(sidebar, text=section.upper(), foreground="#888",
                      font=("", 8, "bold")).pack(anchor="w", pady=(6, 2))
            for view in views_in(section):
                ttk.Button(
                    sidebar, text=VIEW_INFO[view].label,
                    command=lambda v=view: self._select_view(v),
                ).pack(fill=tk.X)

        footer = ttk.Frame(sidebar)
        footer.pack(fill=tk.X, side=tk.BOTTOM, pady=(8, 0))
        ttk.Label(footer, text=self.account.current_user or "",
                  font=("", 10, "bold")).pack(side=tk.LEFT)
        ttk.Button(footer, text="Logout",
                   command=self._logout).pack(side=tk.RIGHT)

        self._content = ttk.Frame(screen)
        screen.add(self._content, weight=1)

        self._refresh_sidebar()
        self._show_panel()

    def _show_panel(self) -> None:
        if self._panel is not None:
            self._panel.destroy()
        self._panel = self._router.panel_for(None, self._content)
        self._panel.pack(fill=tk.BOTH, expand=True)

    def _select_view(self, view: AppView) -> None:
        self._router.select(view)
        self._show_panel()

    # ------------------------------------------------------------------
    # Session management (sidebar)
    # ------------------------------------------------------------------

    def _refresh_sidebar(self) -> None:
        if self._conv_listbox is None:
            return
        self._conv_listbox.delete(0, tk.END)
        active_idx = 0
        for i, session in enumerate(self.sessions.sessions):
            self._conv_listbox.insert(tk.END, session.title)
            if session.id == self.sessions.active_id:
                active_idx = i
        if self._conv_listbox.size() > 0:
            self._conv_listbox.selection_clear(0, tk.END)
            self._conv_listbox.selection_set(active_idx)
            self._conv_listbox.see(active_idx)

    def _selected_session_id(self) -> str | None:
        if self._conv_listbox is None:
            return None
        sel = self._conv_listbox.curselection()
        sessions = self.sessions.sessions
        if sel and sel[0] < len(sessions):
            return sessions[sel[0]].id
        return None

    def _on_conv_selected(self, _event=None) -> None:
        sid = self._selected_session_id()
        if sid is None:
            return
        self.sessions.select(sid)
        self._after_session_change(switch_to_chat=True)

    def _new_chat(self) -> None:
        self._save_guard(self.sessions.create_session)
        self._after_session_change(switch_to_chat=True)

    def _delete_chat(self) -> None:
        sid = self._selected_session_id()
        if sid is None:
            return
        self._save_guard(
            lambda: self.sessions.delete_session(
                sid,
                confirm=lambda: messagebox.askyesno(
                    "Delete Chat",
                    "Are you sure you want to delete this chat? "
                    "This action cannot be undone.",
                    icon=messagebox.WARNING,
                    parent=self.root,
                ),
            )
        )
        self._after_session_change(switch_to_chat=False)

    def _after_session_change(self, switch_to_chat: bool) -> None:
        self._refresh_sidebar()
        if switch_to_chat and self._router.current is not AppView.CHAT:
            self._select_view(AppView.CHAT)
        elif isinstance(self._panel, _ChatPanel):
            self._panel.render()

    def _save_guard(self, action):
        """Run a store mutation and return its result.

        Storage failures are shown in an error box and yield *None*.
        """
        try:
            return action()
        except OrionError as exc:
            messagebox.showerror("Storage Error", str(exc), parent=self.root)
            return None

    # ------------------------------------------------------------------
    # Sending messages
    # ------------------------------------------------------------------

    @property
    def chat_busy(self) -> bool:
        return self._pending is not None

    def send_chat(self, text: str, *, model: str, use_search: bool,
                  use_maps: bool, attachment: Attachment | None) -> None:
        if self.chat_busy:
            return
        self.chat_error = None
        try:
            dispatcher = self._get_dispatcher()
            pending = dispatcher.begin(
                text, self.account.current_user or "", model,
                use_search, use_maps, attachment,
            )
        except OrionError as exc:
            self.chat_error = str(exc)
            if isinstance(self._panel, _ChatPanel):
                self._panel.show_error(self.chat_error)
            return
        if pending is None:
            return

        self._pending = pending
        self._refresh_sidebar()
        if isinstance(self._panel, _ChatPanel):
            self._panel.show_error(None)
            self._panel.set_busy(True)
            self._panel.render()

        def _worker() -> None:
            try:
                response = dispatcher.execute(pending)
            except RequestFailed as exc:
                self._events.post("failed", (pending, exc))
            except Exception as exc:  # noqa: BLE001
                log.error("[APP] Unexpected error in chat worker",
                          exc_info=True)
                self._events.post(
                    "failed",
                    (pending, RequestFailed("Failed to get response", exc)))
            else:
                self._events.post("reply", (pending, response))

        threading.Thread(target=_worker, daemon=True).start()

    def _finish_chat(self, pending: PendingRequest,
                     error: str | None) -> None:
        if self._pending is not pending:
            return
        self._pending = None
        self.chat_error = error
        self._refresh_sidebar()
        if isinstance(self._panel, _ChatPanel):
            self._panel.set_busy(False)
            self._panel.show_error(error)
            self._panel.render()

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def _on_close(self) -> None:
        if self.recorder.recording:
            self.recorder.stop()
        self._kv.close()
        self.root.destroy()

    def run(self) -> None:
        """Start the Tk main loop."""
        self.root.mainloop()
