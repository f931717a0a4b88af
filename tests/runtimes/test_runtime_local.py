"""
Tests for LocalProcessAdapter.

These spawn real subprocesses using the running interpreter, so they do not
depend on any particular binary being on PATH.
"""

import sys

import pytest

from localflow.runtimes import LocalProcessAdapter, RuntimeErrorCategory, RuntimeUnitError, UnitSpec

pytestmark = pytest.mark.integration


async def _run(adapter: LocalProcessAdapter, spec: UnitSpec, name: str = "unit") -> tuple[int, str]:
    ref = await adapter.create(spec, name)
    try:
        await adapter.start(ref)
        code = await adapter.wait(ref)
        return code, await adapter.logs(ref)
    finally:
        await adapter.remove(ref)


class TestLocalProcess:
    @pytest.mark.asyncio
    async def test_exit_code_and_merged_output(self):
        spec = UnitSpec(
            image="ignored",
            command=[sys.executable, "-c"],
            args=["import sys; print('out', flush=True); print('err', file=sys.stderr, flush=True); sys.exit(3)"],
        )
        code, output = await _run(LocalProcessAdapter(), spec)

        assert code == 3
        assert "out" in output
        assert "err" in output

    @pytest.mark.asyncio
    async def test_env_overlay(self):
        spec = UnitSpec(
            image="ignored",
            command=[sys.executable, "-c", "import os; print(os.environ['LOCALFLOW_NODE_NAME'])"],
            env={"LOCALFLOW_NODE_NAME": "main[0].a"},
        )
        code, output = await _run(LocalProcessAdapter(), spec)

        assert code == 0
        assert output.strip() == "main[0].a"

    @pytest.mark.asyncio
    async def test_working_dir(self, tmp_path):
        spec = UnitSpec(
            image="ignored",
            command=[sys.executable, "-c", "import os; print(os.getcwd())"],
            working_dir=str(tmp_path),
        )
        _, output = await _run(LocalProcessAdapter(), spec)

        assert output.strip() == str(tmp_path.resolve())

    @pytest.mark.asyncio
    async def test_missing_working_dir(self, tmp_path):
        adapter = LocalProcessAdapter()
        spec = UnitSpec(image="ignored", command=[sys.executable], working_dir=str(tmp_path / "nope"))
        ref = await adapter.create(spec, "unit")

        with pytest.raises(RuntimeUnitError) as exc_info:
            await adapter.start(ref)
        assert exc_info.value.category is RuntimeErrorCategory.NOT_FOUND
        await adapter.remove(ref)

    @pytest.mark.asyncio
    async def test_command_not_found(self):
        adapter = LocalProcessAdapter()
        ref = await adapter.create(UnitSpec(image="ignored", command=["localflow-no-such-binary"]), "unit")

        with pytest.raises(RuntimeUnitError) as exc_info:
            await adapter.start(ref)
        assert exc_info.value.category is RuntimeErrorCategory.NOT_FOUND
        await adapter.remove(ref)

    @pytest.mark.asyncio
    async def test_empty_command_rejected(self):
        with pytest.raises(RuntimeUnitError, match="No command specified"):
            await LocalProcessAdapter().create(UnitSpec(image="alpine"), "unit")

    @pytest.mark.asyncio
    async def test_name_conflict(self):
        adapter = LocalProcessAdapter()
        spec = UnitSpec(image="ignored", command=[sys.executable, "-c", "pass"])
        await adapter.create(spec, "same")

        with pytest.raises(RuntimeUnitError) as exc_info:
            await adapter.create(spec, "same")
        assert exc_info.value.category is RuntimeErrorCategory.CONFLICT
        await adapter.close()

    @pytest.mark.asyncio
    async def test_remove_terminates_running_process(self):
        adapter = LocalProcessAdapter(kill_timeout_seconds=1.0)
        ref = await adapter.create(
            UnitSpec(image="ignored", command=[sys.executable, "-c", "import time; time.sleep(30)"]),
            "sleeper",
        )
        await adapter.start(ref)
        process = adapter._units[ref].process

        await adapter.remove(ref)

        assert process.returncode is not None
        await adapter.remove(ref)

    @pytest.mark.asyncio
    async def test_health(self):
        health = await LocalProcessAdapter().health()
        assert health.healthy
        assert health.runtime == "local"
