"""Chat tab renderer."""

from __future__ import annotations

import html
from typing import Sequence

import streamlit as st

from models import ChatMessage
from services.app_helpers import get_chat_session
from services.chat_service import ChatBusyError
from utils_streamlit import show_api_error

ROLE_LABELS = {"user": "You", "assistant": "Ally"}


def _entry(message: ChatMessage) -> str:
    label = html.escape(ROLE_LABELS.get(message.role, message.role))
    return f"<div class='chat-entry'><strong>{label}:</strong> {html.escape(message.content)}</div>"


def render_transcript(messages: Sequence[ChatMessage]) -> str:
    """Return the transcript as escaped HTML, oldest first."""

    if not messages:
        return "<div class='chat-entry'>No chat history yet.</div>"
    return "<hr>".join(_entry(m) for m in messages[-40:])


def render_tab(session_state) -> None:
    chat = get_chat_session(session_state)

    transcript = st.empty()
    transcript.markdown(f"<div class='chat-stream'>{render_transcript(chat.messages)}</div>", unsafe_allow_html=True)

    prompt = st.chat_input("Talk to Ally", disabled=chat.is_busy)
    if prompt:
        def redraw(_message: ChatMessage) -> None:
            transcript.markdown(
                f"<div class='chat-stream'>{render_transcript(chat.messages)}</div>",
                unsafe_allow_html=True,
            )

        try:
            chat.send_message(prompt, on_update=redraw)
        except ChatBusyError as exc:
            st.info(str(exc))
        redraw(chat.messages[-1])
        if chat.error:
            show_api_error(chat.error)

    if st.button("Clear conversation", key="clear_chat"):
        chat.clear_history()
        st.rerun()
