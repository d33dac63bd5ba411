"""Unit tests for the structured logger and its buffer"""

import json
import logging

from src.shared.logs.logger import LogBuffer, StructuredLogger, get_logger


class TestLogBuffer:
    """Test bounding and persistence"""

    def test_oldest_entries_dropped(self):
        """Test the buffer keeps only the newest entries"""
        logger = StructuredLogger(buffer=LogBuffer(max_entries=3))

        for i in range(5):
            logger.info(f"entry {i}")

        assert [e["message"] for e in logger.get_logs()] == ["entry 2", "entry 3", "entry 4"]

    def test_persisted_entries_reload(self, tmp_path):
        """Test entries mirrored to a file are loaded by a new buffer"""
        path = tmp_path / "logs.jsonl"
        logger = StructuredLogger(buffer=LogBuffer(max_entries=10, persist_path=str(path)))
        logger.warning("saved", {"key": "value"})

        reloaded = LogBuffer(max_entries=10, persist_path=str(path))

        assert len(reloaded) == 1
        assert reloaded.entries()[0]["message"] == "saved"
        assert reloaded.entries()[0]["context"] == {"key": "value"}

    def test_persisted_file_is_appended(self, tmp_path):
        """Test entries are appended one line each below the compaction size"""
        path = tmp_path / "logs.jsonl"
        logger = StructuredLogger(buffer=LogBuffer(max_entries=2, persist_path=str(path)))

        for i in range(3):
            logger.info(f"entry {i}")

        lines = path.read_text().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["entry 0", "entry 1", "entry 2"]

    def test_persisted_file_is_compacted(self, tmp_path):
        """Test the file is cut back to the newest entries at twice max_entries"""
        path = tmp_path / "logs.jsonl"
        logger = StructuredLogger(buffer=LogBuffer(max_entries=2, persist_path=str(path)))

        for i in range(4):
            logger.info(f"entry {i}")
        compacted = [json.loads(line)["message"] for line in path.read_text().splitlines()]
        logger.info("entry 4")

        assert compacted == ["entry 2", "entry 3"]
        assert len(path.read_text().splitlines()) == 3
        reloaded = LogBuffer(max_entries=2, persist_path=str(path))
        assert [e["message"] for e in reloaded.entries()] == ["entry 3", "entry 4"]

    def test_clear_removes_file(self, tmp_path):
        """Test clearing empties memory and deletes the mirror"""
        path = tmp_path / "logs.jsonl"
        logger = StructuredLogger(buffer=LogBuffer(persist_path=str(path)))
        logger.info("entry")

        logger.clear_logs()

        assert logger.get_logs() == []
        assert not path.exists()


class TestStructuredLogger:
    """Test filtering, context and queries"""

    def test_level_filtering(self):
        """Test entries below the minimum level are dropped"""
        logger = StructuredLogger(min_level=logging.WARNING, buffer=LogBuffer())

        logger.debug("debug")
        logger.info("info")
        logger.warning("warning")
        logger.error("error")

        assert [e["level"] for e in logger.get_logs()] == ["WARNING", "ERROR"]

    def test_disabled_logger(self):
        """Test a disabled logger records nothing"""
        logger = StructuredLogger(enabled=False, buffer=LogBuffer())

        logger.error("ignored")

        assert logger.get_logs() == []

    def test_child_shares_buffer_and_merges_context(self):
        """Test child loggers tag entries and share the parent buffer"""
        parent = StructuredLogger(buffer=LogBuffer(), context={"service": "contact"})
        child = parent.child({"request": "r1"}, source="dispatcher")

        child.info("hello", {"extra": 1})

        entry = parent.get_logs()[0]
        assert entry["source"] == "dispatcher"
        assert entry["context"] == {"service": "contact", "request": "r1", "extra": 1}

    def test_queries_by_level_and_source(self):
        """Test filtering stored entries"""
        parent = StructuredLogger(buffer=LogBuffer())
        a = parent.child(source="a")
        b = parent.child(source="b")

        a.info("from a")
        b.error("from b")

        assert [e["message"] for e in parent.get_logs_by_source("a")] == ["from a"]
        assert [e["message"] for e in parent.get_logs_by_level(logging.ERROR)] == ["from b"]

    def test_forwards_to_standard_logging(self, caplog):
        """Test entries also reach the standard library logger"""
        logger = StructuredLogger(name="contact.forward", buffer=LogBuffer())

        with caplog.at_level(logging.INFO, logger="contact.forward"):
            logger.info("forwarded")

        assert "forwarded" in caplog.text

    def test_get_logger_returns_tagged_child(self):
        """Test the process default hands out children tagged by source"""
        logger = get_logger("tests")

        assert logger.source == "tests"
        assert logger.buffer is get_logger("other").buffer
