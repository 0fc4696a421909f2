"""产物提取与 JSON 修复测试"""

import json

import pytest

from distill.agent.artifact import PARSE_FAILURE_RISK, Artifact
from distill.agent.result_extractor import extract_artifact, locate_json, repair_json

FULL_ARTIFACT = {
    "taskType": "feature",
    "summary": "Add rounding to formatPrice",
    "context": "Prices are shown with decimals",
    "acceptanceCriteria": ["12.01 EUR renders as 13 EUR"],
    "filesToCreate": [{"path": "src/pricing/round.ts", "description": "Rounding helper"}],
    "filesToModify": [
        {
            "path": "src/pricing/format.ts",
            "changes": [{"location": "L10-12", "action": "modify", "description": "Use roundUp"}],
        }
    ],
    "risks": [{"description": "Currency rounding rules", "severity": "HIGH", "mitigation": "Check locales"}],
    "metadata": {"estimatedEffort": "~1h", "affectedComponents": ["pricing"]},
}


class TestLocateJson:
    """候选文本定位测试"""

    def test_complete_fence_wins(self) -> None:
        text = 'Intro\n```json\n{"a": 1}\n```\nOutro {"b": 2}'
        assert locate_json(text) == '{"a": 1}'

    def test_open_fence(self) -> None:
        """未闭合代码块取到末尾"""
        assert locate_json('```json\n{"a": [1, 2') == '{"a": [1, 2'

    def test_task_type_marker(self) -> None:
        text = 'Thinking {not json} then {"taskType": "bugfix"} done'
        assert locate_json(text) == '{"taskType": "bugfix"}'

    def test_first_brace(self) -> None:
        assert locate_json('Result: {"summary": "x"}') == '{"summary": "x"}'

    def test_whole_text(self) -> None:
        assert locate_json("  no json here  ") == "no json here"

    def test_trailing_prose_removed(self) -> None:
        """最后一个 '}' 之后的说明文字被丢弃"""
        assert locate_json('{"a": 1}\nHope this helps!') == '{"a": 1}'


class TestRepairJson:
    """截断修复测试"""

    def test_well_formed_unchanged(self) -> None:
        text = json.dumps(FULL_ARTIFACT)
        assert json.loads(repair_json(text)) == FULL_ARTIFACT

    def test_truncated_short_value_dropped(self) -> None:
        """截断的短字符串值连同键一起删除"""
        repaired = repair_json('{"taskType": "feature", "summary": "Add ca')
        assert json.loads(repaired) == {"taskType": "feature"}

    def test_truncated_long_value_closed(self) -> None:
        """较长的截断字符串被补全引号并保留"""
        repaired = repair_json('{"summary": "This summary is long enough to be kept as is')
        assert json.loads(repaired) == {"summary": "This summary is long enough to be kept as is"}

    def test_dangling_key(self) -> None:
        assert json.loads(repair_json('{"summary": "x", "context"')) == {"summary": "x"}

    def test_dangling_key_colon(self) -> None:
        assert json.loads(repair_json('{"summary": "x", "context":')) == {"summary": "x"}

    def test_dangling_open_array(self) -> None:
        assert json.loads(repair_json('{"summary": "x", "risks": [')) == {"summary": "x"}

    def test_dangling_open_object(self) -> None:
        assert json.loads(repair_json('{"summary": "x", "metadata": {')) == {"summary": "x"}

    def test_dangling_scalar_in_nested_object(self) -> None:
        """嵌套对象中截断的标量成员被删除，外层结构补齐"""
        text = '{"summary": "x", "metadata": {"estimatedEffort": "2h", "requiresTests": tru'
        assert json.loads(repair_json(text)) == {"summary": "x", "metadata": {"estimatedEffort": "2h"}}

    def test_truncated_inside_array(self) -> None:
        """数组元素后的逗号被清理"""
        text = '{"acceptanceCriteria": ["first", "second",'
        assert json.loads(repair_json(text)) == {"acceptanceCriteria": ["first", "second"]}

    def test_string_in_array_is_not_a_key(self) -> None:
        """数组中的字符串不被当作悬空键删除"""
        text = '{"dependencies": ["a", "b'
        assert json.loads(repair_json(text)) == {"dependencies": ["a", "b"]}

    def test_pending_escape_removed(self) -> None:
        """字符串末尾未完成的转义被丢弃"""
        text = '{"summary": "path is C:\\\\dir and more text here \\'
        assert json.loads(repair_json(text)) == {"summary": "path is C:\\dir and more text here "}

    def test_partial_unicode_escape_removed(self) -> None:
        text = '{"summary": "long enough summary text \\u00'
        assert json.loads(repair_json(text)) == {"summary": "long enough summary text "}

    def test_braces_inside_strings_ignored(self) -> None:
        """字符串内的括号不计入深度"""
        text = '{"suggestedCode": "function f() { return [1, 2]; }", "files": ["a"'
        assert json.loads(repair_json(text)) == {
            "suggestedCode": "function f() { return [1, 2]; }",
            "files": ["a"],
        }

    def test_first_member_key_in_nested_object(self) -> None:
        """嵌套对象第一个成员只剩键时删除键，保留空对象"""
        text = '{"summary": "x", "filesToCreate": [\n    {\n      "pa'
        assert json.loads(repair_json(text)) == {"summary": "x", "filesToCreate": [{}]}

    def test_first_member_key_colon(self) -> None:
        assert json.loads(repair_json('{"summary": "x", "filesToCreate": [{"path":')) == {
            "summary": "x",
            "filesToCreate": [{}],
        }

    def test_first_member_scalar(self) -> None:
        assert json.loads(repair_json('{"metadata": {"requiresTests": fal')) == {"metadata": {}}

    def test_truncated_scalar_in_array(self) -> None:
        assert json.loads(repair_json('{"lines": [10, 2')) == {"lines": [10]}
        assert json.loads(repair_json('{"flags": [tr')) == {"flags": []}

    def test_first_member_short_value_kept(self) -> None:
        """第一个成员的完整短字符串值不受影响"""
        assert json.loads(repair_json('{"taskType": "bugfix"')) == {"taskType": "bugfix"}

    def test_trailing_commas_before_closers(self) -> None:
        assert json.loads(repair_json('{"a": [1, 2, ], "b": "x, ]",}')) == {"a": [1, 2], "b": "x, ]"}


class TestExtractArtifact:
    """extract_artifact 测试"""

    def test_well_formed_fenced_block(self) -> None:
        text = "```json\n" + json.dumps(FULL_ARTIFACT, indent=2) + "\n```"
        result = extract_artifact(text)
        assert result.parsed_cleanly
        artifact = result.artifact
        assert artifact.summary == "Add rounding to formatPrice"
        assert artifact.files_to_create[0].path == "src/pricing/round.ts"
        assert artifact.files_to_modify[0].changes[0].location == "L10-12"
        assert artifact.risks[0].severity == "high"
        assert artifact.metadata.estimated_effort == "~1h"
        assert artifact.metadata.requires_tests is True

    def test_truncated_summary_uses_default(self) -> None:
        """截断的短 summary 被删除后回落到默认值"""
        result = extract_artifact('```json\n{"taskType": "feature", "summary": "Add ca')
        assert result.parsed_cleanly
        assert result.artifact.task_type == "feature"
        assert result.artifact.summary == "Analysis completed"
        assert result.artifact.files_to_create == []

    def test_all_fields_defaulted(self) -> None:
        """空对象得到结构完整的产物"""
        artifact = extract_artifact("{}").artifact
        assert artifact.task_type == "feature"
        assert artifact.breaking_changes.has_breaking_changes is False
        assert artifact.metadata.estimated_effort == "Unknown"
        wire = artifact.to_wire()
        assert wire["acceptanceCriteria"] == []
        assert "bugAnalysis" not in wire

    def test_invalid_field_dropped(self) -> None:
        """类型错误的顶层字段被丢弃，其他字段保留"""
        result = extract_artifact('{"summary": "ok", "filesToCreate": "not a list"}')
        assert result.parsed_cleanly
        assert result.artifact.summary == "ok"
        assert result.artifact.files_to_create == []

    def test_null_values_use_defaults(self) -> None:
        artifact = extract_artifact('{"summary": null, "context": null}').artifact
        assert artifact.summary == "Analysis completed"
        assert artifact.context == ""

    def test_degraded_on_unparseable_text(self) -> None:
        """无法解析时返回降级产物而不是抛出"""
        text = "I was unable to finish the analysis. " * 20
        result = extract_artifact(text)
        assert not result.parsed_cleanly
        assert result.error
        assert result.artifact.summary == text[:500]
        assert len(result.artifact.risks) == 1
        assert result.artifact.risks[0].description == PARSE_FAILURE_RISK["description"]

    def test_degraded_on_non_object(self) -> None:
        result = extract_artifact("```json\n[1, 2, 3]\n```")
        assert not result.parsed_cleanly
        assert isinstance(result.artifact, Artifact)

    def test_every_truncation_parses_cleanly(self) -> None:
        """在 JSON 起始之后的任意位置截断，修复结果都能直接解析"""
        text = "```json\n" + json.dumps(FULL_ARTIFACT, indent=2)
        failures = []
        for cut in range(text.index("{") + 1, len(text) + 1):
            result = extract_artifact(text[:cut])
            if not result.parsed_cleanly:
                failures.append((text[:cut][-30:], result.error))
        assert failures == []

    def test_truncated_nested_first_key_keeps_top_level(self) -> None:
        """嵌套对象第一个键处截断时，已输出的顶层字段保留"""
        text = '```json\n{"taskType": "bugfix", "summary": "Fix the crash on empty carts", "filesToCreate": [{"pa'
        result = extract_artifact(text)
        assert result.parsed_cleanly
        assert result.artifact.task_type == "bugfix"
        assert result.artifact.summary == "Fix the crash on empty carts"
