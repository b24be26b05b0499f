from __future__ import annotations

from typing import Any

from scriptgraph.app.models.graph import GraphSnapshot
from scriptgraph.app.models.script import DiagnosticCode, DiagnosticLevel
from scriptgraph.app.services.script_generator import (
    EXECUTION_BANNER,
    FUNCTIONS_BANNER,
    GRAPH_CYCLE_MARKER,
    HEADER_LINES,
    ScriptGenerator,
)


def _block(block_id: str, **fields: Any) -> dict[str, Any]:
    return {"id": block_id, **fields}


def _link(source: str, target: str, **ports: str) -> dict[str, str]:
    return {"from_block_id": source, "to_block_id": target, **ports}


def _snapshot(blocks: list[dict[str, Any]], connections: list[dict[str, str]] | None = None) -> GraphSnapshot:
    return GraphSnapshot.model_validate({"blocks": blocks, "connections": connections or []})


def _generate(snapshot: GraphSnapshot, **options: Any) -> tuple[str, ScriptGenerator]:
    options.setdefault("include_header", False)
    generator = ScriptGenerator(**options)
    return generator.generate(snapshot), generator


def _execution(*statements: str) -> str:
    return "\n".join([EXECUTION_BANNER, "", "\n\n".join(statements)]) + "\n"


def test_linear_chain_is_one_pipeline_without_binding() -> None:
    snapshot = _snapshot(
        [
            _block("proc", title="Get Processes", command="Get-Process"),
            _block("sort", title="Sort", command="Sort-Object"),
        ],
        [_link("proc", "sort")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution("Get-Process | Sort-Object")
    assert generator.bindings == []
    assert generator.diagnostics == []


def test_fan_out_binds_producer_once_and_consumers_reference_it() -> None:
    snapshot = _snapshot(
        [
            _block("svc1", title="Get Services", command="Get-Service"),
            _block("flt1", title="Filter", script_body="Where-Object { $_.Status -eq 'Running' }"),
            _block("srt1", title="Sort", command="Sort-Object"),
        ],
        [_link("svc1", "flt1"), _link("svc1", "srt1")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution(
        "$GetServices_svc1 = Get-Service",
        "$GetServices_svc1 | Where-Object { $_.Status -eq 'Running' }",
        "$GetServices_svc1 | Sort-Object",
    )
    assert [(item.block_id, item.name) for item in generator.bindings] == [("svc1", "GetServices_svc1")]


def test_explicit_output_variable_is_used_for_the_binding() -> None:
    snapshot = _snapshot(
        [
            _block("svc1", title="Get Services", command="Get-Service", output_variable="services"),
            _block("a", command="Measure-Object"),
            _block("b", command="Format-Table"),
        ],
        [_link("svc1", "a"), _link("svc1", "b")],
    )

    script, _ = _generate(snapshot)

    assert "$Services = Get-Service" in script
    assert "$Services | Measure-Object" in script
    assert "$Services | Format-Table" in script


def test_two_node_cycle_yields_only_the_diagnostic_line() -> None:
    snapshot = _snapshot(
        [_block("a", command="Get-Item"), _block("b", command="Set-Item")],
        [_link("a", "b"), _link("b", "a")],
    )

    script, generator = _generate(snapshot, include_header=True)

    assert script == GRAPH_CYCLE_MARKER + "\n"
    assert generator.has_errors()
    [diagnostic] = generator.diagnostics
    assert diagnostic.level == DiagnosticLevel.ERROR
    assert diagnostic.code == DiagnosticCode.CYCLE
    assert set(diagnostic.block_ids) == {"a", "b"}


def test_container_input_flows_into_then_zone() -> None:
    snapshot = _snapshot(
        [
            _block("src1", title="Get Services", command="Get-Service"),
            _block(
                "cond",
                title="If",
                container={"kind": "if_else", "condition": "$env:CI", "then": ["stop"]},
            ),
            _block("stop", title="Stop", command="Stop-Service"),
        ],
        [_link("src1", "cond")],
    )

    script, _ = _generate(snapshot)

    assert script == _execution(
        "$GetServices_src1 = Get-Service",
        "\n".join(
            [
                "if ($env:CI) {",
                "    $GetServices_src1 | Stop-Service",
                "}",
            ]
        ),
    )


def test_else_zone_is_emitted_only_when_it_has_children() -> None:
    with_else = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "condition": "$x", "then": ["t"], "else": ["e"]}),
            _block("t", command="Write-Output", parameters=[{"name": "InputObject", "value": "yes"}]),
            _block("e", command="Write-Output", parameters=[{"name": "InputObject", "value": "no"}]),
        ]
    )
    without_else = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "condition": "$x", "then": ["t"]}),
            _block("t", command="Write-Output"),
        ]
    )

    with_else_script, _ = _generate(with_else)
    without_else_script, _ = _generate(without_else)

    assert with_else_script == _execution(
        "\n".join(
            [
                "if ($x) {",
                '    Write-Output -InputObject "yes"',
                "}",
                "else {",
                '    Write-Output -InputObject "no"',
                "}",
            ]
        )
    )
    assert "else" not in without_else_script


def test_bound_container_is_assigned_and_referenced_downstream() -> None:
    snapshot = _snapshot(
        [
            _block("cond1", title="If", container={"kind": "if_else", "then": ["val"]}),
            _block("val", script_body="'ready'"),
            _block("out", command="Out-File", parameters=[{"name": "FilePath", "type": "path", "value": "log.txt"}]),
        ],
        [_link("cond1", "out")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution(
        "\n".join(["$If_cond = if ($true) {", "    'ready'", "}"]),
        '$If_cond | Out-File -FilePath "log.txt"',
    )
    assert [(item.block_id, item.name) for item in generator.bindings] == [("cond1", "If_cond")]


def test_for_each_body_receives_current_item() -> None:
    snapshot = _snapshot(
        [
            _block("files", title="Get-ChildItem", command="Get-ChildItem"),
            _block("loop", container={"kind": "for_each", "body": ["rm"]}),
            _block("rm", command="Remove-Item"),
        ],
        [_link("files", "loop")],
    )

    script, _ = _generate(snapshot)

    assert script == _execution(
        "$GetChildItem_file = Get-ChildItem",
        "\n".join(["$GetChildItem_file | ForEach-Object {", "    $_ | Remove-Item", "}"]),
    )


def test_for_each_without_input_and_empty_while_body() -> None:
    snapshot = _snapshot(
        [
            _block("loop", container={"kind": "for_each", "body": ["echo"]}),
            _block("echo", command="Write-Output"),
            _block("spin", container={"kind": "while", "condition": "$i -lt 3"}),
        ]
    )

    script, _ = _generate(snapshot)

    assert script == _execution(
        "\n".join(["ForEach-Object {", "    $_ | Write-Output", "}"]),
        "\n".join(["while ($i -lt 3) {", "    # (empty)", "}"]),
    )


def test_while_body_gets_container_input() -> None:
    snapshot = _snapshot(
        [
            _block("queue", title="Queue", command="Get-Queue"),
            _block("spin", container={"kind": "while", "condition": "$queue.Count -gt 0", "body": ["pop"]}),
            _block("pop", command="Pop-Item"),
        ],
        [_link("queue", "spin")],
    )

    script, _ = _generate(snapshot)

    assert "while ($queue.Count -gt 0) {\n    $Queue_queu | Pop-Item\n}" in script


def test_try_catch_recovery_zone_has_no_implicit_input() -> None:
    snapshot = _snapshot(
        [
            _block("src", title="Url", script_body="'https://example.test'"),
            _block("guard", container={"kind": "try_catch", "try": ["call"], "catch": ["warn"]}),
            _block("call", command="Invoke-WebRequest"),
            _block("warn", script_body="Write-Warning $_"),
        ],
        [_link("src", "guard")],
    )

    script, _ = _generate(snapshot)

    assert script == _execution(
        "$Url_src = 'https://example.test'",
        "\n".join(
            [
                "try {",
                "    $Url_src | Invoke-WebRequest",
                "}",
                "catch {",
                "    Write-Warning $_",
                "}",
            ]
        ),
    )


def test_callable_is_hoisted_before_execution_and_called_by_name() -> None:
    snapshot = _snapshot(
        [
            _block("proc", command="Get-Process"),
            _block(
                "fn1",
                title="Report",
                container={
                    "kind": "function",
                    "function_name": "Get-Report",
                    "input_param": "InputObject",
                    "body": ["fmt"],
                },
            ),
            _block("fmt", command="Format-Table"),
        ],
        [_link("proc", "fn1")],
    )

    script, _ = _generate(snapshot)

    assert script == "\n".join(
        [
            FUNCTIONS_BANNER,
            "",
            "function Get-Report {",
            "    param(",
            "        [Parameter(ValueFromPipeline)]",
            "        $InputObject",
            "    )",
            "    process {",
            "        $InputObject | Format-Table",
            "    }",
            "}",
            "",
            EXECUTION_BANNER,
            "",
            "Get-Process | Get-Report",
            "",
        ]
    )
    assert script.index("function Get-Report") < script.index(EXECUTION_BANNER)


def test_callable_without_input_param_emits_body_directly() -> None:
    snapshot = _snapshot(
        [
            _block("fn1", container={"kind": "function", "function_name": "  ", "body": ["date"]}),
            _block("date", command="Get-Date"),
        ]
    )

    script, _ = _generate(snapshot)

    assert "function Invoke-MyFunction {\n    Get-Date\n}" in script
    assert script.endswith("Invoke-MyFunction\n")


def test_nested_callable_is_hoisted_to_the_definitions_section() -> None:
    snapshot = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "then": ["inner"]}),
            _block("inner", container={"kind": "function", "function_name": "Show-Inner"}),
        ]
    )

    script, _ = _generate(snapshot)

    definitions, execution = script.split(EXECUTION_BANNER)
    assert "function Show-Inner {\n    # (empty)\n}" in definitions
    assert "if ($true) {\n    Show-Inner\n}" in execution


def test_equal_titles_never_share_a_synthesized_name() -> None:
    snapshot = _snapshot(
        [
            _block("abcd1234", title="Query", command="Get-A"),
            _block("abcd5678", title="Query", command="Get-B"),
            _block("x1", command="Out-A"),
            _block("x2", command="Out-B"),
            _block("y1", command="Out-C"),
            _block("y2", command="Out-D"),
        ],
        [
            _link("abcd1234", "x1"),
            _link("abcd1234", "x2"),
            _link("abcd5678", "y1"),
            _link("abcd5678", "y2"),
        ],
    )

    script, generator = _generate(snapshot)

    names = {item.block_id: item.name for item in generator.bindings}
    assert names == {"abcd1234": "Query_abcd", "abcd5678": "Query_abcd5"}
    assert "$Query_abcd5 | Out-C" in script


def test_identical_id_suffixes_fall_back_to_a_counter() -> None:
    snapshot = _snapshot(
        [
            _block("node", title="Step", command="Get-A"),
            _block("node-", title="Step", command="Get-B"),
            _block("a", command="Out-A"),
            _block("b", command="Out-B"),
            _block("c", command="Out-C"),
            _block("d", command="Out-D"),
        ],
        [_link("node", "a"), _link("node", "b"), _link("node-", "c"), _link("node-", "d")],
    )

    _, generator = _generate(snapshot)

    assert [item.name for item in generator.bindings] == ["Step_node", "Step_node_2"]


def test_output_is_deterministic() -> None:
    snapshot = _snapshot(
        [
            _block("svc1", title="Get Services", command="Get-Service"),
            _block("cond", container={"kind": "if_else", "then": ["t"]}),
            _block("t", command="Restart-Service"),
            _block("log", command="Export-Csv", parameters=[{"name": "Path", "type": "path", "value": "out.csv"}]),
        ],
        [_link("svc1", "cond"), _link("svc1", "log")],
    )
    generator = ScriptGenerator()

    first = generator.generate(snapshot)
    second = generator.generate(snapshot)
    fresh = ScriptGenerator().generate(snapshot)

    assert first == second == fresh
    assert len(generator.bindings) == 1


def test_header_is_emitted_when_enabled() -> None:
    script, _ = _generate(_snapshot([_block("a", command="Get-Date")]), include_header=True)

    assert script.splitlines()[:3] == HEADER_LINES
    assert script.endswith("Get-Date\n")


def test_indent_size_controls_nesting() -> None:
    snapshot = _snapshot(
        [
            _block("loop", container={"kind": "for_each", "body": ["inner"]}),
            _block("inner", container={"kind": "if_else", "then": ["leaf"]}),
            _block("leaf", command="Write-Host"),
        ]
    )

    script, _ = _generate(snapshot, indent_size=2)

    assert "ForEach-Object {\n  if ($true) {\n    $_ | Write-Host\n  }\n}" in script


def test_zone_cycle_is_reported_in_band() -> None:
    snapshot = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "then": ["a", "b"], "else": ["ok"]}),
            _block("a", command="Get-A"),
            _block("b", command="Get-B"),
            _block("ok", command="Get-C"),
        ],
        [_link("a", "b"), _link("b", "a")],
    )

    script, generator = _generate(snapshot)

    assert "    # ERROR: Cycle detected in zone 'Then'!" in script
    assert "else {\n    Get-C\n}" in script
    assert [item.code for item in generator.diagnostics] == [DiagnosticCode.CYCLE]


def test_sibling_zone_bindings_are_not_shared() -> None:
    snapshot = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "then": ["p", "q1", "q2"], "else": ["r"]}),
            _block("p", title="Pick", command="Get-A"),
            _block("q1", command="Out-A"),
            _block("q2", command="Out-B"),
            _block("r", command="Get-C"),
        ],
        [_link("p", "q1"), _link("p", "q2")],
    )

    script, generator = _generate(snapshot)

    assert "    $Pick_p = Get-A" in script
    assert "    $Pick_p | Out-B" in script
    assert "else {\n    Get-C\n}" in script
    assert [item.name for item in generator.bindings] == ["Pick_p"]


def test_malformed_references_are_skipped_with_warnings() -> None:
    snapshot = _snapshot(
        [
            _block("a", command="Get-A"),
            _block("b", command="Get-B"),
            _block("cond", container={"kind": "if_else", "then": ["ghost"]}),
        ],
        [
            _link("a", "missing"),
            _link("a", "a"),
            _link("a", "b", to_port_id="Nope"),
            _link("a", "b"),
            _link("a", "b"),
        ],
    )

    script, generator = _generate(snapshot)

    assert "Get-A | Get-B" in script
    assert "if ($true) {\n    # (empty)\n}" in script
    assert [item.code for item in generator.diagnostics] == [
        DiagnosticCode.DANGLING_CONNECTION,
        DiagnosticCode.SELF_CONNECTION,
        DiagnosticCode.UNKNOWN_PORT,
        DiagnosticCode.DUPLICATE_CONNECTION,
        DiagnosticCode.DANGLING_ZONE_CHILD,
    ]
    assert all(item.level == DiagnosticLevel.WARNING for item in generator.diagnostics)


def test_multiple_producers_leave_upstream_unresolved() -> None:
    snapshot = _snapshot(
        [
            _block("l", command="Get-Left"),
            _block("r", command="Get-Right"),
            _block("join", command="Join-Data", inputs=["Left", "Right"]),
        ],
        [_link("l", "join", to_port_id="Left"), _link("r", "join", to_port_id="Right")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution("Get-Left", "Get-Right", "Join-Data")
    [diagnostic] = generator.diagnostics
    assert diagnostic.code == DiagnosticCode.AMBIGUOUS_UPSTREAM
    assert diagnostic.block_ids == ["join", "l", "r"]


def test_block_nested_in_two_zones_keeps_first_parent() -> None:
    snapshot = _snapshot(
        [
            _block("one", container={"kind": "for_each", "body": ["shared"]}),
            _block("two", container={"kind": "while", "body": ["shared"]}),
            _block("shared", command="Get-Shared"),
        ]
    )

    script, generator = _generate(snapshot)

    assert "ForEach-Object {\n    $_ | Get-Shared\n}" in script
    assert "while ($true) {\n    # (empty)\n}" in script
    assert [item.code for item in generator.diagnostics] == [DiagnosticCode.DUPLICATE_ZONE_CHILD]


def test_empty_graph_produces_header_only() -> None:
    script, generator = _generate(_snapshot([]), include_header=True)

    assert script == "\n".join(HEADER_LINES) + "\n"
    assert generator.diagnostics == []


def test_zone_child_reads_binding_from_enclosing_scope() -> None:
    snapshot = _snapshot(
        [
            _block("srcA", title="Src", command="Get-Src"),
            _block("x", command="Out-X"),
            _block("y", command="Out-Y"),
            _block("cond", container={"kind": "if_else", "then": ["b"]}),
            _block("b", command="Stop-Thing"),
        ],
        [_link("srcA", "x"), _link("srcA", "y"), _link("srcA", "b")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution(
        "$Src_srcA = Get-Src",
        "$Src_srcA | Out-X",
        "$Src_srcA | Out-Y",
        "\n".join(["if ($true) {", "    $Src_srcA | Stop-Thing", "}"]),
    )
    assert generator.diagnostics == []


def test_nested_consumer_forces_binding_before_its_container() -> None:
    snapshot = _snapshot(
        [
            _block("outer", container={"kind": "if_else", "then": ["loop"]}),
            _block("loop", container={"kind": "for_each", "body": ["b"]}),
            _block("b", command="Stop-Thing"),
            _block("srcA", title="Src", command="Get-Src"),
        ],
        [_link("srcA", "b")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution(
        "$Src_srcA = Get-Src",
        "\n".join(
            [
                "if ($true) {",
                "    ForEach-Object {",
                "        $Src_srcA | Stop-Thing",
                "    }",
                "}",
            ]
        ),
    )
    assert [(item.block_id, item.name) for item in generator.bindings] == [("srcA", "Src_srcA")]


def test_producer_outside_visible_scopes_is_reported() -> None:
    snapshot = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "then": ["t"]}),
            _block("t", command="Get-T"),
            _block("out", command="Out-Host"),
        ],
        [_link("t", "out")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution("\n".join(["if ($true) {", "    Get-T", "}"]), "Out-Host")
    [diagnostic] = generator.diagnostics
    assert diagnostic.code == DiagnosticCode.UNRESOLVED_UPSTREAM
    assert diagnostic.level == DiagnosticLevel.WARNING
    assert diagnostic.block_ids == ["out", "t"]


def test_second_connection_into_one_input_is_skipped() -> None:
    snapshot = _snapshot(
        [
            _block("a", command="Get-A"),
            _block("c", command="Get-C"),
            _block("b", command="Sort-Object"),
        ],
        [_link("a", "b"), _link("c", "b")],
    )

    script, generator = _generate(snapshot)

    assert script == _execution("Get-A | Sort-Object", "Get-C")
    [diagnostic] = generator.diagnostics
    assert diagnostic.code == DiagnosticCode.INPUT_ALREADY_CONNECTED
    assert diagnostic.level == DiagnosticLevel.WARNING
    assert diagnostic.block_ids == ["c", "b"]


def test_container_listing_itself_as_child_is_ignored() -> None:
    snapshot = _snapshot(
        [
            _block("cond", container={"kind": "if_else", "then": ["cond", "t"]}),
            _block("t", command="Get-T"),
        ]
    )

    script, generator = _generate(snapshot)

    assert script == _execution("\n".join(["if ($true) {", "    Get-T", "}"]))
    assert [item.code for item in generator.diagnostics] == [DiagnosticCode.NESTING_CYCLE]


def test_cycle_inside_function_body_is_reported_in_band() -> None:
    snapshot = _snapshot(
        [
            _block("fn", container={"kind": "function", "function_name": "Invoke-Loop", "body": ["a", "b"]}),
            _block("a", command="Get-A"),
            _block("b", command="Get-B"),
        ],
        [_link("a", "b"), _link("b", "a")],
    )

    script, generator = _generate(snapshot)

    assert "function Invoke-Loop {\n    # ERROR: Cycle detected in zone 'Body'!\n}" in script
    assert script.endswith(f"{EXECUTION_BANNER}\n\nInvoke-Loop\n")
    assert [item.code for item in generator.diagnostics] == [DiagnosticCode.CYCLE]
    assert generator.has_errors()


def test_cycle_between_callables_aborts_generation() -> None:
    snapshot = _snapshot(
        [
            _block("f1", container={"kind": "function", "function_name": "Invoke-One"}),
            _block("loop", container={"kind": "for_each", "body": ["f2"]}),
            _block("f2", container={"kind": "function", "function_name": "Invoke-Two"}),
        ],
        [_link("f1", "f2"), _link("f2", "f1")],
    )

    script, generator = _generate(snapshot, include_header=True)

    assert script == GRAPH_CYCLE_MARKER + "\n"
    [diagnostic] = generator.diagnostics
    assert diagnostic.code == DiagnosticCode.CYCLE
    assert set(diagnostic.block_ids) == {"f1", "f2"}


def test_explicit_name_never_reuses_a_synthesized_one() -> None:
    snapshot = _snapshot(
        [
            _block("--", title="Data", command="Get-A"),
            _block("e1", title="Other", command="Get-B", output_variable="data"),
            _block("e2", title="Third", command="Get-C", output_variable="DATA"),
            _block("x1", command="Out-A"),
            _block("x2", command="Out-B"),
            _block("y1", command="Out-C"),
            _block("y2", command="Out-D"),
            _block("z1", command="Out-E"),
            _block("z2", command="Out-F"),
        ],
        [
            _link("--", "x1"),
            _link("--", "x2"),
            _link("e1", "y1"),
            _link("e1", "y2"),
            _link("e2", "z1"),
            _link("e2", "z2"),
        ],
    )

    script, generator = _generate(snapshot)

    assert [item.name for item in generator.bindings] == ["Data", "Data_2", "DATA_3"]
    assert "$Data_2 = Get-B" in script
    assert "$DATA_3 | Out-F" in script


def test_function_body_cannot_read_execution_section_output() -> None:
    snapshot = _snapshot(
        [
            _block("srcA", title="Src", command="Get-Src"),
            _block("fn", container={"kind": "function", "function_name": "Invoke-Work", "body": ["b"]}),
            _block("b", command="Stop-Thing"),
        ],
        [_link("srcA", "b")],
    )

    script, generator = _generate(snapshot)

    assert "function Invoke-Work {\n    Stop-Thing\n}" in script
    assert script.endswith(f"{EXECUTION_BANNER}\n\nGet-Src\n\nInvoke-Work\n")
    assert generator.bindings == []
    [diagnostic] = generator.diagnostics
    assert diagnostic.code == DiagnosticCode.UNRESOLVED_UPSTREAM
    assert diagnostic.block_ids == ["b", "srcA"]
