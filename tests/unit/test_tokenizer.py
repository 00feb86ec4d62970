"""Tests for the WordPiece tokenizer."""
import pytest

from lexrag.rag.tokenizer import WordPieceTokenizer

from tests.conftest import VOCAB

CLS, SEP, UNK = VOCAB.index("[CLS]"), VOCAB.index("[SEP]"), VOCAB.index("[UNK]")


def ids(*tokens):
    return [VOCAB.index(t) for t in tokens]


def test_whole_words_are_framed_by_special_tokens(tokenizer):
    assert tokenizer.encode("this agreement") == [CLS] + ids("this", "agreement") + [SEP]


def test_empty_text_encodes_to_special_tokens_only(tokenizer):
    assert tokenizer.encode("") == [CLS, SEP]
    assert tokenizer.encode("   ") == [CLS, SEP]


def test_unknown_word_splits_into_continuation_pieces(tokenizer):
    assert tokenizer.encode("terminated") == [CLS] + ids("term", "##inate", "##d") + [SEP]
    assert tokenizer.encode("confidentiality") == [CLS] + ids("confidential", "##ity") + [SEP]


def test_unmatched_word_maps_to_unknown(tokenizer):
    assert tokenizer.encode("xyz") == [CLS, UNK, SEP]


def test_unmatched_tail_ends_word_with_unknown(tokenizer):
    # "notice" matches, the trailing "." has no continuation piece
    assert tokenizer.encode("notice.") == [CLS] + ids("notice") + [UNK, SEP]


def test_lowercases_by_default(tokenizer):
    assert tokenizer.encode("THIS Agreement") == tokenizer.encode("this agreement")


def test_case_sensitive_when_lowercase_disabled():
    tokenizer = WordPieceTokenizer(VOCAB, lowercase=False)
    assert tokenizer.encode("THIS") == [CLS, UNK, SEP]


def test_truncates_to_max_sequence_length(tokenizer):
    encoded = tokenizer.encode("this " * 50)

    assert len(encoded) == tokenizer.max_sequence_length
    assert encoded[0] == CLS
    assert encoded[-1] == SEP


def test_truncation_keeps_end_token_after_multi_piece_word():
    tokenizer = WordPieceTokenizer(VOCAB, max_sequence_length=4)
    encoded = tokenizer.encode("this terminated")

    assert encoded == [CLS] + ids("this", "term") + [SEP]


def test_encoding_is_deterministic(tokenizer):
    text = "The parties agree to maintain confidentiality"
    assert tokenizer.encode(text) == tokenizer.encode(text)


def test_first_occurrence_of_duplicate_token_wins():
    tokenizer = WordPieceTokenizer(["[CLS]", "[SEP]", "[UNK]", "a", "a"])
    assert tokenizer.token_id("a") == 3
    assert tokenizer.vocabulary_size == 4


def test_missing_special_tokens_are_rejected():
    with pytest.raises(ValueError, match=r"\[UNK\]"):
        WordPieceTokenizer(["[CLS]", "[SEP]", "word"])


def test_sequence_length_must_fit_special_tokens():
    with pytest.raises(ValueError):
        WordPieceTokenizer(VOCAB, max_sequence_length=1)


def test_from_file_uses_line_numbers_as_ids(tmp_path):
    vocab_file = tmp_path / "vocab.txt"
    vocab_file.write_text("\n".join(VOCAB) + "\n", encoding="utf-8")

    tokenizer = WordPieceTokenizer.from_file(vocab_file, max_sequence_length=16)

    assert tokenizer.token_id("agreement") == VOCAB.index("agreement")
    assert tokenizer.encode("this agreement") == [CLS] + ids("this", "agreement") + [SEP]
