import json

from docreview.review.extraction import EXTRACTION_STEP, ChecklistExtractionPipeline
from docreview.services.llm_client import LLMCallError

from .conftest import ScriptedGenerator, document_name, make_document, run, system_prompt

CHECKLIST_TEXT = "title: must be present\ndate: must be present"


def reply(items, is_checklist=True):
    return {"isChecklistDocument": is_checklist, "newChecklists": items}


def truncated_reply(items, tail='"partial ite'):
    body = json.dumps(reply(items))
    # drop the closing "]}" and leave a half-written item behind
    return body[:-2] + ", " + tail


def contents(store, session_id="s1"):
    return sorted(item.content for item in run(store.list_items(session_id)))


def test_checklist_document_yields_its_items(store):
    generator = ScriptedGenerator([reply(["title: must be present", "date: must be present"])])
    pipeline = ChecklistExtractionPipeline(store, generator)

    outcome = run(pipeline.run("s1", [make_document("rules.md", CHECKLIST_TEXT)], "checklist"))

    assert outcome.steps[EXTRACTION_STEP].status == "success"
    items = run(store.list_items("s1"))
    assert sorted(i.content for i in items) == ["date: must be present", "title: must be present"]
    assert all(i.provenance == "system" for i in items)
    assert len(generator.calls) == 1
    assert CHECKLIST_TEXT in generator.calls[0]["messages"][1]["content"][1]["text"]


def test_previous_system_items_are_replaced_and_user_items_kept(store):
    run(store.create_item("s1", "old system item", "system"))
    run(store.create_item("s1", "hand written item", "user"))
    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator([reply(["fresh item"])]))

    run(pipeline.run("s1", [make_document("rules.md")], "checklist"))

    assert contents(store) == ["fresh item", "hand written item"]


def test_non_checklist_document_fails_without_retry(store):
    generator = ScriptedGenerator([reply(["something"], is_checklist=False)])
    pipeline = ChecklistExtractionPipeline(store, generator)

    outcome = run(pipeline.run("s1", [make_document("essay.md")], "checklist"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert step.error_message.startswith("essay.md: ")
    assert "not look like a checklist document" in step.error_message
    assert len(generator.calls) == 1
    assert contents(store) == []


def topics(*names):
    return {"topics": [{"topic": name, "reason": f"{name} matters"} for name in names]}


def topic_items(*items):
    return {"checklistItems": [{"checklistItem": item, "reason": "useful"} for item in items]}


def topic_of(messages):
    return messages[-1]["content"][0]["text"].rsplit("for topic: ", 1)[1].split(":")[0]


def test_general_documents_get_checklist_items_per_topic(store):
    per_topic = {
        "Scope": topic_items("Is the scope stated?", "Are exclusions listed?"),
        "Security": topic_items("Are credentials kept out of the document?"),
    }

    def handler(messages, schema):
        if schema.__name__ == "TopicsOutput":
            return topics("Scope", "Security")
        return per_topic[topic_of(messages)]

    generator = ScriptedGenerator(handler=handler)
    pipeline = ChecklistExtractionPipeline(store, generator)
    files = [make_document("handbook.md"), make_document("annex.md")]

    outcome = run(pipeline.run("s1", files, "general", checklist_requirements="Focus on security"))

    assert outcome.steps[EXTRACTION_STEP].status == "success"
    assert contents(store) == [
        "Are credentials kept out of the document?",
        "Are exclusions listed?",
        "Is the scope stated?",
    ]
    topic_call = generator.calls_for("TopicsOutput")[0]
    assert "Focus on security" in system_prompt(topic_call["messages"])
    assert "handbook.md, annex.md" in topic_call["messages"][1]["content"][0]["text"]
    checklist_calls = generator.calls_for("TopicChecklistOutput")
    assert len(checklist_calls) == 2
    assert all("Focus on security" in system_prompt(call["messages"]) for call in checklist_calls)


def test_general_topic_without_items_is_not_an_error(store):
    def handler(messages, schema):
        if schema.__name__ == "TopicsOutput":
            return topics("Scope", "History")
        return topic_items("Is the scope stated?") if topic_of(messages) == "Scope" else topic_items()

    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator(handler=handler))

    outcome = run(pipeline.run("s1", [make_document("handbook.md")], "general"))

    assert outcome.steps[EXTRACTION_STEP].status == "success"
    assert contents(store) == ["Is the scope stated?"]


def test_general_items_shared_by_topics_are_persisted_once(store):
    def handler(messages, schema):
        if schema.__name__ == "TopicsOutput":
            return topics("Scope", "Audience")
        return topic_items("Is the purpose stated?", f"{topic_of(messages)} item")

    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator(handler=handler))

    run(pipeline.run("s1", [make_document("handbook.md")], "general"))

    assert contents(store) == ["Audience item", "Is the purpose stated?", "Scope item"]


def test_general_document_yielding_nothing_fails(store):
    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator([topics()]))

    outcome = run(pipeline.run("s1", [make_document("blank.md")], "general"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert step.error_message == "no checklist items could be extracted from blank.md"


def test_general_topic_failure_is_reported_and_other_topics_kept(store):
    def handler(messages, schema):
        if schema.__name__ == "TopicsOutput":
            return topics("Scope", "Budget")
        if topic_of(messages) == "Budget":
            return LLMCallError("timeout")
        return topic_items("Is the scope stated?")

    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator(handler=handler))

    outcome = run(pipeline.run("s1", [make_document("plan.md")], "general"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert step.error_message == "Budget: timeout"
    assert contents(store) == ["Is the scope stated?"]


def test_general_topic_extraction_failure_fails_the_run(store):
    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator([LLMCallError("rejected")]))

    outcome = run(pipeline.run("s1", [make_document("plan.md")], "general"))

    assert outcome.steps[EXTRACTION_STEP].error_message == "plan.md: rejected"


def test_document_without_items_is_an_error(store):
    pipeline = ChecklistExtractionPipeline(store, ScriptedGenerator([reply([])]))

    outcome = run(pipeline.run("s1", [make_document("empty.md")], "checklist"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert "no checklist items could be extracted from empty.md" in step.error_message


def test_truncated_output_is_repaired_and_extraction_continues(store):
    generator = ScriptedGenerator(
        [
            truncated_reply(["a", "b"]),
            reply(["b", "c"]),
        ]
    )
    pipeline = ChecklistExtractionPipeline(store, generator)

    outcome = run(pipeline.run("s1", [make_document("long.md")], "checklist"))

    assert outcome.steps[EXTRACTION_STEP].status == "success"
    assert contents(store) == ["a", "b", "c"]
    assert len(generator.calls) == 2
    second_prompt = system_prompt(generator.calls[1]["messages"])
    assert "So far, you have identified 2 items" in second_prompt
    assert "1. a\n2. b" in second_prompt


def test_repeated_items_are_never_persisted_twice(store):
    generator = ScriptedGenerator(
        [
            truncated_reply(["a", "b"]),
            truncated_reply(["a", "b"]),
            reply(["a", "b", "b"]),
        ]
    )
    pipeline = ChecklistExtractionPipeline(store, generator)

    outcome = run(pipeline.run("s1", [make_document("long.md")], "checklist"))

    assert outcome.steps[EXTRACTION_STEP].status == "success"
    assert contents(store) == ["a", "b"]
    assert len(generator.calls) == 3


def test_extraction_gives_up_after_max_attempts(store):
    generator = ScriptedGenerator([truncated_reply([f"item {n}"]) for n in range(5)])
    pipeline = ChecklistExtractionPipeline(store, generator, max_attempts=5)

    outcome = run(pipeline.run("s1", [make_document("huge.md")], "checklist"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert "within 5 attempts" in step.error_message
    assert "split" in step.error_message
    assert len(generator.calls) == 5
    # items found before giving up stay persisted
    assert len(contents(store)) == 5


def test_unrepairable_output_fails_the_file(store):
    generator = ScriptedGenerator(['{"isChecklistDocument": true, "newChe'])
    pipeline = ChecklistExtractionPipeline(store, generator)

    outcome = run(pipeline.run("s1", [make_document("broken.md")], "checklist"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert "reduce the document size" in step.error_message


def test_one_failing_file_does_not_stop_the_others(store):
    def handler(messages, schema):
        name = document_name(messages)
        if name == "bad.md":
            return LLMCallError("model request failed after 4 attempts: timeout")
        return reply([f"from {name}"])

    generator = ScriptedGenerator(handler=handler)
    pipeline = ChecklistExtractionPipeline(store, generator, concurrency=2)

    files = [make_document("one.md"), make_document("bad.md"), make_document("two.md")]
    outcome = run(pipeline.run("s1", files, "checklist"))

    step = outcome.steps[EXTRACTION_STEP]
    assert step.status == "failed"
    assert step.error_message == "bad.md: model request failed after 4 attempts: timeout"
    assert contents(store) == ["from one.md", "from two.md"]


def test_every_failing_file_is_reported(store):
    generator = ScriptedGenerator(handler=lambda messages, schema: reply([], is_checklist=False))
    pipeline = ChecklistExtractionPipeline(store, generator)

    outcome = run(pipeline.run("s1", [make_document("x.md"), make_document("y.md")], "checklist"))

    lines = outcome.steps[EXTRACTION_STEP].error_message.splitlines()
    assert [line.split(":")[0] for line in lines] == ["x.md", "y.md"]
