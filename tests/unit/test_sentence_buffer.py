"""
Unit tests for the critique SentenceBuffer.

Fragments are joined into sentences and released as ONE message when the
debounce expires or the buffer is flushed explicitly. A burst of complete
sentences becomes a numbered list under a preamble.
"""

import asyncio

import pytest

from kognys.streaming.buffer import (
    CHALLENGER_NAME,
    CHALLENGER_ROLE,
    MULTI_FRAGMENT_PREAMBLE,
    SentenceBuffer,
    format_fragments,
    is_complete_sentence,
)
from kognys.settings import settings


@pytest.fixture
def emitted():
    return []


@pytest.fixture
def buffer(emitted):
    return SentenceBuffer(emitted.append)


class TestIsCompleteSentence:
    """Tests for the default completeness test."""

    @pytest.mark.parametrize(
        "text",
        [
            "The draft is thin.",
            "Is this supported?",
            "Cite your sources!",
            'He said "enough."',
            "The methods section lacks specificity",
            "The methods section lacks specific",
            "The conclusion is too vague",
            "It asserts causality without explaining",
            "The analysis fails to address",
            "The paper does not provide",
            "The results section needs more detail",
            "The introduction should include",
            "The draft Is Too Vague",
        ],
    )
    def test_complete(self, text):
        assert is_complete_sentence(text)

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "   ",
            "The draft",
            "The draft lacks",
            "is too vague about the method",
            "Section 3, paragraph",
        ],
    )
    def test_incomplete(self, text):
        assert not is_complete_sentence(text)

    def test_trailing_whitespace_ignored(self):
        assert is_complete_sentence("Done.   ")


class TestFormatFragments:
    def test_single_fragment_is_verbatim(self):
        assert format_fragments(["Only one."]) == "Only one."

    def test_multiple_fragments_are_numbered(self):
        text = format_fragments(["First.", "Second.", "Third."])
        assert text == f"{MULTI_FRAGMENT_PREAMBLE}\n\n1. First.\n2. Second.\n3. Third."


class TestSentenceBufferSync:
    """Buffer behavior without a running event loop (no debounce timer)."""

    def test_fragments_join_into_one_sentence(self, buffer, emitted):
        buffer.append("The draft", 1.0)
        buffer.append("lacks evidence.", 1.0)

        assert buffer.pending_buffer == ""
        assert buffer.accumulated_fragments == ["The draft lacks evidence."]
        assert emitted == []

    def test_no_double_space_when_fragment_ends_with_space(self, buffer):
        buffer.append("The draft ", 1.0)
        buffer.append("is weak.", 1.0)
        assert buffer.accumulated_fragments == ["The draft is weak."]

    def test_flush_emits_single_fragment_verbatim(self, buffer, emitted):
        buffer.append("The draft is thin.", 1.0)
        message = buffer.flush()

        assert emitted == [message]
        assert message.message == "The draft is thin."
        assert message.agent_name == CHALLENGER_NAME
        assert message.role == CHALLENGER_ROLE
        assert message.message_type == "analyzing"
        assert message.target_agent == "orchestrator"

    def test_three_sentences_become_numbered_list(self, buffer, emitted):
        buffer.append("A.", 1.0)
        buffer.append("B.", 1.0)
        buffer.append("C.", 1.0)
        buffer.flush()

        assert len(emitted) == 1
        assert emitted[0].message == f"{MULTI_FRAGMENT_PREAMBLE}\n\n1. A.\n2. B.\n3. C."

    def test_flush_includes_incomplete_tail(self, buffer, emitted):
        buffer.append("Complete one.", 1.0)
        buffer.append("and a dangling", 1.0)
        buffer.flush()

        assert emitted[0].message.endswith("1. Complete one.\n2. and a dangling")

    def test_flush_is_idempotent(self, buffer, emitted):
        buffer.append("Something.", 1.0)
        assert buffer.flush() is not None
        assert buffer.flush() is None
        assert len(emitted) == 1
        assert not buffer.has_content

    def test_flush_on_empty_buffer(self, buffer, emitted):
        assert buffer.flush() is None
        assert emitted == []

    def test_whitespace_only_is_not_content(self, buffer, emitted):
        buffer.append("   ", 1.0)
        assert not buffer.has_content
        assert buffer.flush() is None
        assert emitted == []

    def test_empty_fragment_ignored(self, buffer):
        buffer.append("", 1.0)
        assert buffer.pending_buffer == ""

    def test_discard_drops_everything(self, buffer, emitted):
        buffer.append("Sentence.", 1.0)
        buffer.append("partial", 1.0)
        buffer.discard()

        assert not buffer.has_content
        assert buffer.flush() is None
        assert emitted == []

    def test_custom_completeness_predicate(self, emitted):
        buffer = SentenceBuffer(emitted.append, is_complete=lambda text: text.endswith(";"))
        buffer.append("first;", 1.0)
        buffer.append("second.", 1.0)

        assert buffer.accumulated_fragments == ["first;"]
        assert buffer.pending_buffer == "second."


class TestSentenceBufferDebounce:
    """Debounce timer behavior on a running event loop."""

    @pytest.mark.asyncio
    async def test_debounce_flushes_after_quiet_period(self, buffer, emitted):
        buffer.append("The draft is thin.", 0.05)
        assert buffer.flush_scheduled
        assert emitted == []

        await asyncio.sleep(0.1)

        assert len(emitted) == 1
        assert not buffer.flush_scheduled

    @pytest.mark.asyncio
    async def test_default_message_debounce(self, buffer, emitted):
        """An incomplete fragment is flushed once, about a second after the last append."""
        buffer.append("the methods section", settings.stream.message_debounce)

        await asyncio.sleep(0.8)
        assert emitted == []

        await asyncio.sleep(0.5)
        assert [m.message for m in emitted] == ["the methods section"]

        await asyncio.sleep(0.3)
        assert len(emitted) == 1

    @pytest.mark.asyncio
    async def test_append_rearms_deadline(self, buffer, emitted):
        buffer.append("One.", 0.1)
        await asyncio.sleep(0.06)
        buffer.append("Two.", 0.1)
        await asyncio.sleep(0.06)

        # 0.12s since the first append, but only 0.06s since the last
        assert emitted == []

        await asyncio.sleep(0.1)
        assert len(emitted) == 1
        assert emitted[0].message == f"{MULTI_FRAGMENT_PREAMBLE}\n\n1. One.\n2. Two."

    @pytest.mark.asyncio
    async def test_incomplete_text_flushed_by_timer(self, buffer, emitted):
        buffer.append("no punctuation here", 0.05)
        await asyncio.sleep(0.1)

        assert emitted[0].message == "no punctuation here"

    @pytest.mark.asyncio
    async def test_explicit_flush_cancels_timer(self, buffer, emitted):
        buffer.append("Flushed early.", 0.05)
        buffer.flush()
        assert not buffer.flush_scheduled

        await asyncio.sleep(0.1)
        assert len(emitted) == 1

    @pytest.mark.asyncio
    async def test_discard_cancels_timer(self, buffer, emitted):
        buffer.append("Never shown.", 0.05)
        buffer.discard()

        await asyncio.sleep(0.1)
        assert emitted == []

    @pytest.mark.asyncio
    async def test_separate_bursts_emit_separately(self, buffer, emitted):
        buffer.append("First burst.", 0.03)
        await asyncio.sleep(0.08)
        buffer.append("Second burst.", 0.03)
        await asyncio.sleep(0.08)

        assert [m.message for m in emitted] == ["First burst.", "Second burst."]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
