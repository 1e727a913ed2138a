"""Tests for command hooks."""

import asyncio
import unittest
from typing import Dict, List

from fsdeploy.exceptions import CommandHookError, ValidationError
from fsdeploy.hooks import (
    CommandEntry,
    CommandHookPipeline,
    CommandSettings,
    evaluate_transform,
    values_for_file,
)
from fsdeploy.values import StaticValue, ValueStore
from tests.fixtures.test_data import MemoryClient


class RecordingExecutor:
    def __init__(self, outputs: Dict[str, bytes] = None) -> None:
        self.outputs = outputs or {}
        self.commands: List[str] = []

    async def __call__(self, command: str) -> bytes:
        self.commands.append(command)
        return self.outputs.get(command, b"")


class TestCommandSettings(unittest.TestCase):
    """Test cases for parsing hook configuration."""

    def test_strings_and_tables(self) -> None:
        settings = CommandSettings.from_dict(
            {
                "connected": "pwd",
                "beforeUpload": [
                    "echo one",
                    {"command": "id -un", "writeOutputTo": "user"},
                ],
                "encoding": " latin-1 ",
            }
        )

        self.assertEqual(settings.connected, [CommandEntry(command="pwd")])
        self.assertEqual(settings.before_upload[1].write_output_to, "user")
        self.assertEqual(settings.encoding, "latin-1")

    def test_invalid_types(self) -> None:
        with self.assertRaises(ValidationError):
            CommandSettings.from_dict({"uploaded": 42})
        with self.assertRaises(ValidationError):
            CommandSettings.from_dict("pwd")

    def test_values_for_file(self) -> None:
        values = {v.name: v.value for v in values_for_file("/var/www/index.html")}

        self.assertEqual(
            values,
            {
                "remote_dir": "/var/www",
                "remote_file": "/var/www/index.html",
                "remote_name": "index.html",
            },
        )


class TestCommandHookPipeline(unittest.TestCase):
    """Test cases for CommandHookPipeline."""

    def test_runs_in_order_with_substitution(self) -> None:
        execute = RecordingExecutor()
        settings = CommandSettings.from_dict(
            {"uploaded": ["chmod 644 ${remote_file}", "ls ${remote_dir}"]}
        )
        pipeline = CommandHookPipeline(settings, execute)

        asyncio.run(pipeline.run("uploaded", values_for_file("/www/a.txt")))

        self.assertEqual(execute.commands, ["chmod 644 /www/a.txt", "ls /www"])

    def test_output_feeds_later_commands(self) -> None:
        execute = RecordingExecutor({"whoami": b"deploy\n"})
        settings = CommandSettings.from_dict(
            {
                "connected": [
                    {"command": "whoami", "write_output_to": "user"},
                    "chown ${user} /www",
                ]
            }
        )
        store = ValueStore()
        pipeline = CommandHookPipeline(settings, execute, store=store)

        asyncio.run(pipeline.run("connected"))

        self.assertEqual(execute.commands[1], "chown deploy\n /www")
        self.assertEqual(store.get("user"), "deploy\n")

    def test_transform_before_write(self) -> None:
        execute = RecordingExecutor({"whoami": b"  deploy\n"})
        settings = CommandSettings.from_dict(
            {
                "connected": [
                    {
                        "command": "whoami",
                        "write_output_to": "user",
                        "execute_before_write_output_to": "user.strip().upper()",
                    },
                    "echo ${user}",
                ]
            }
        )
        pipeline = CommandHookPipeline(settings, execute)

        asyncio.run(pipeline.run("connected"))

        self.assertEqual(execute.commands, ["whoami", "echo DEPLOY"])
        self.assertEqual(pipeline.store.get("user"), "DEPLOY")

    def test_blank_command_is_skipped(self) -> None:
        execute = RecordingExecutor()
        settings = CommandSettings(
            uploaded=[CommandEntry(command="  ", write_output_to="out")]
        )
        pipeline = CommandHookPipeline(settings, execute)

        results = asyncio.run(pipeline.run("uploaded"))

        self.assertEqual(results, [None])
        self.assertEqual(execute.commands, [])
        self.assertIn("out", pipeline.store)

    def test_failing_command_aborts_batch(self) -> None:
        commands: List[str] = []

        async def execute(command: str) -> bytes:
            commands.append(command)
            raise CommandHookError("exit status 1")

        settings = CommandSettings.from_dict({"deleted": ["false", "true"]})
        pipeline = CommandHookPipeline(settings, execute)

        with self.assertRaises(CommandHookError):
            asyncio.run(pipeline.run("deleted"))
        self.assertEqual(commands, ["false"])

    def test_provider_values(self) -> None:
        execute = RecordingExecutor()
        settings = CommandSettings.from_dict({"connected": "cd ${root}"})
        pipeline = CommandHookPipeline(
            settings, execute, value_provider=lambda: [StaticValue("root", "/srv")]
        )

        asyncio.run(pipeline.run("connected"))

        self.assertEqual(execute.commands, ["cd /srv"])

    def test_encoding(self) -> None:
        pipeline = CommandHookPipeline(
            CommandSettings(encoding="ascii"), RecordingExecutor(), default_encoding="latin-1"
        )
        self.assertEqual(pipeline.encoding, "ascii")
        self.assertEqual(
            CommandHookPipeline(None, RecordingExecutor(), default_encoding="latin-1").encoding,
            "latin-1",
        )


class TestEvaluateTransform(unittest.TestCase):
    """Test cases for output transform expressions."""

    def test_context(self) -> None:
        entry = CommandEntry(command="pwd")
        result = evaluate_transform(
            "values['remote-dir'] ~ '/' ~ text",
            entry,
            b"x",
            "x",
            [StaticValue("remote-dir", "/www")],
            "out",
        )
        self.assertEqual(result, "/www/x")

    def test_unknown_name_fails(self) -> None:
        with self.assertRaises(CommandHookError):
            evaluate_transform("nope + 1", CommandEntry(), None, None, [], "out")

    def test_sandbox_blocks_private_attributes(self) -> None:
        with self.assertRaises(CommandHookError):
            evaluate_transform(
                "text.__class__.__mro__", CommandEntry(), b"x", "x", [], "out"
            )


class TestClientHooks(unittest.TestCase):
    """Hooks wired into a client's operations."""

    def test_upload_hooks_wrap_the_put(self) -> None:
        client = MemoryClient(
            commands={
                "before_upload": "backup ${remote_file}",
                "uploaded": "touch ${remote_name}",
            }
        )

        async def run() -> None:
            async with client:
                await client.upload_file("/www/index.html", b"<html>")

        asyncio.run(run())

        self.assertEqual(
            [c[:2] for c in client.primitive_calls("execute", "put")],
            [
                ("execute", "backup www/index.html"),
                ("put", "www/index.html"),
                ("execute", "touch index.html"),
            ],
        )

    def test_connected_hooks(self) -> None:
        client = MemoryClient(
            commands={"connected": {"command": "pwd", "write_output_to": "home"}},
            command_outputs={"pwd": b"/home/deploy"},
        )

        async def run() -> None:
            await client.connect()
            self.assertEqual([v.value for v in client.values], ["/home/deploy"])
            await client.dispose()

        asyncio.run(run())


if __name__ == "__main__":
    unittest.main()
