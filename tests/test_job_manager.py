"""
Tests for background render jobs.
"""

from manuscript_renderer.job_manager import RenderJobManager
from manuscript_renderer.models import BotAction, BotMessage, CommandContext, CommandResult, JobStatus


class FakeCommand:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def execute(self, params, context):
        self.calls.append((dict(params), context.manuscript_id))
        if self.error:
            raise self.error
        return self.result


def run_job(command, params=None):
    manager = RenderJobManager(command_factory=lambda: command)
    summary = manager.create_job(CommandContext(manuscript_id="m-1", service_token="secret"), params or {})
    manager.shutdown(wait=True)
    return manager, manager.get_job(summary.id)


class TestRenderJobManager:
    """Job lifecycle and outcome tracking."""

    def test_completed_job_keeps_actions(self):
        result = CommandResult(
            messages=[BotMessage(content="✅ **Markdown Rendered Successfully**")],
            actions=[BotAction(type="FILE_UPLOADED", data={"filename": "paper.pdf"})],
        )
        command = FakeCommand(result)

        _, job = run_job(command, {"output": "pdf"})

        assert job.status == JobStatus.COMPLETED
        assert job.actions[0].data["filename"] == "paper.pdf"
        assert job.message.startswith("✅")
        assert job.error is None
        assert [event.message for event in job.events] == [
            "Render registered and awaiting execution.",
            "Render started.",
            "Render completed with 1 output(s).",
        ]
        assert command.calls == [({"output": "pdf"}, "m-1")]

    def test_result_without_outputs_fails(self):
        result = CommandResult(messages=[BotMessage(content="❌ **Authentication Error**\n\nmissing")], errors=["no token"])

        _, job = run_job(FakeCommand(result))

        assert job.status == JobStatus.FAILED
        assert job.error == "no token"

    def test_error_falls_back_to_message_headline(self):
        result = CommandResult(messages=[BotMessage(content="❌ **Rendering Failed**\n\ndetails")])

        _, job = run_job(FakeCommand(result))

        assert job.error == "❌ **Rendering Failed**"

    def test_crash_is_recorded(self):
        _, job = run_job(FakeCommand(error=RuntimeError("boom")))

        assert job.status == JobStatus.FAILED
        assert job.error == "boom"
        assert job.events[-1].message == "Render failed: boom"

    def test_summary_output_formats(self):
        manager, job = run_job(FakeCommand(CommandResult()), {"output": "pdf,html"})

        assert job.output_formats == ["pdf", "html"]
        assert manager.list_jobs()[0].id == job.id

    def test_summary_uses_config_formats_by_default(self):
        _, job = run_job(FakeCommand(CommandResult()))

        assert job.output_formats == ["pdf"]

    def test_unknown_job(self):
        manager = RenderJobManager()
        assert manager.get_job("missing") is None
        manager.shutdown()
