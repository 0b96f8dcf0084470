import json

from edu_advisor.stream.decoder import ChunkDecoder
from edu_advisor.stream.transport import sse_frames


def _raw_frame(text: str) -> bytes:
    payload = json.dumps({"choices": [{"delta": {"content": text}}]}, ensure_ascii=False)
    return f"data: {payload}\n\n".encode("utf-8")


def test_decoder_emits_ordered_fragments_and_final() -> None:
    decoder = ChunkDecoder()

    fragments = decoder.feed(b"".join(sse_frames(["Hello", ", ", "world"])))

    assert [fragment.text for fragment in fragments] == ["Hello", ", ", "world", ""]
    assert [fragment.sequence for fragment in fragments] == [0, 1, 2, 3]
    assert fragments[-1].is_final
    assert not any(fragment.is_final for fragment in fragments[:-1])
    assert decoder.finished


def test_decoder_reassembles_multibyte_characters_split_across_buffers() -> None:
    texts = ["Zürich ", "Universität ", "🎓 ", "東京"]
    stream = b"".join(_raw_frame(text) for text in texts) + b"data: [DONE]\n\n"
    decoder = ChunkDecoder()

    fragments = []
    for index in range(len(stream)):
        fragments.extend(decoder.feed(stream[index : index + 1]))

    assert "".join(fragment.text for fragment in fragments) == "".join(texts)
    assert fragments[-1].is_final
    assert decoder.skipped_lines == 0


def test_decoder_skips_malformed_and_non_data_lines() -> None:
    stream = (
        b"data: {not json}\n\n"
        b": keep-alive\n\n"
        b"event: ping\n"
        b'data: {"error": {"message": "overloaded"}}\n\n'
        b'data: {"choices": [{"delta": {"content": "ok"}}]}\n\n'
        b"data: [DONE]\n\n"
    )
    decoder = ChunkDecoder()

    fragments = decoder.feed(stream)

    assert [fragment.text for fragment in fragments] == ["ok", ""]
    assert decoder.skipped_lines == 2


def test_decoder_ignores_everything_after_the_sentinel() -> None:
    decoder = ChunkDecoder()

    fragments = decoder.feed(b'data: [DONE]\n\ndata: {"text": "late"}\n\n')

    assert len(fragments) == 1
    assert fragments[0].is_final
    assert decoder.feed(b'data: {"text": "later"}\n\n') == []
    assert decoder.close() == []


def test_decoder_accepts_crlf_line_endings() -> None:
    decoder = ChunkDecoder()

    fragments = decoder.feed(b'data: {"text": "a"}\r\n\r\ndata: [DONE]\r\n')

    assert [fragment.text for fragment in fragments] == ["a", ""]


def test_decoder_close_flushes_residue_and_terminates() -> None:
    decoder = ChunkDecoder()

    assert decoder.feed(b'data: {"content": "tail"}') == []
    fragments = decoder.close()

    assert [fragment.text for fragment in fragments] == ["tail", ""]
    assert fragments[-1].is_final
    assert decoder.finished


def test_decoder_close_on_empty_stream_yields_only_final() -> None:
    decoder = ChunkDecoder()

    fragments = decoder.close()

    assert len(fragments) == 1
    assert fragments[0].is_final
    assert fragments[0].text == ""
