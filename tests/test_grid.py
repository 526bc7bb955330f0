from fantasy_roto.grid import detect_team_header, extract, is_noise, parse_dollars
from fantasy_roto.league import LeagueVocabulary
from fantasy_roto.models import SheetKind

VOCAB = LeagueVocabulary.from_teams(
    {
        "DDG": ["Dodger Dawgs"],
        "SKD": ["Skunk Dogs"],
        "FTP": ["Foul Tip"],
        "DKG": ["Diamond Kings", "Kings"],
    }
)


def period_grid() -> list[list[object]]:
    return [
        ["2024 Period 2", None, None],
        ["", "Dodger Dawgs", "Skunk Dogs"],
        ["C", "J. Posada", "I. Rodriguez"],
        ["1B", "Foul Tip", "1B"],
        ["", "A. Pujols", "12"],
        ["P", "R. Johnson", "N/A"],
        ["Salary Cap Total", "B. Bonds", "Somebody Else"],
        ["OF", "K. Griffey", "M. Ramirez"],
    ]


def test_detect_team_header_maps_columns() -> None:
    header_row, columns = detect_team_header(period_grid(), VOCAB)
    assert header_row == 1
    assert columns == {1: "DDG", 2: "SKD"}


def test_wide_grid_rows_follow_header_and_drop_noise() -> None:
    result = extract(period_grid(), SheetKind.PERIOD, VOCAB, season=2024)

    assert result.layout == "wide"
    emitted = [(row.team_code, row.player_name_raw, row.position, row.is_pitcher_guess) for row in result.rows]
    assert emitted == [
        ("DDG", "J. Posada", "C", False),
        ("SKD", "I. Rodriguez", "C", False),
        ("DDG", "A. Pujols", "1B", False),
        ("DDG", "R. Johnson", "P", True),
    ]
    assert {row.team_code for row in result.rows} <= set(result.team_columns.values())
    names = {row.player_name_raw for row in result.rows}
    assert not any(VOCAB.is_position(name) or VOCAB.is_team_alias(name) for name in names)


def test_player_name_containing_alias_is_kept() -> None:
    assert not is_noise("E. Kingsale", VOCAB)
    assert is_noise("Diamond Kings", VOCAB)
    assert is_noise("SS", VOCAB)
    assert is_noise("3/4", VOCAB)
    assert is_noise("J", VOCAB)


def test_section_label_sets_pitcher_context() -> None:
    grid = [
        ["", "Dodger Dawgs", "Skunk Dogs"],
        ["Pitchers", "", ""],
        ["", "G. Maddux", "T. Glavine"],
        ["Hitters", "", ""],
        ["", "C. Jones", "A. Jones"],
    ]
    rows = extract(grid, SheetKind.PERIOD, VOCAB, season=2004).rows
    pitchers = {row.player_name_raw for row in rows if row.is_pitcher_guess}
    assert pitchers == {"G. Maddux", "T. Glavine"}
    assert len(rows) == 4


def test_roster_cap_applies_per_team() -> None:
    grid = [["", "Dodger Dawgs", "Skunk Dogs"]]
    for idx in range(30):
        grid.append(["OF", f"Hitter Number {idx}", f"Other Hitter {idx}"])

    capped = extract(grid, SheetKind.PERIOD, VOCAB, season=2015).rows
    assert sum(1 for row in capped if row.team_code == "DDG") == 23
    assert sum(1 for row in capped if row.team_code == "SKD") == 23

    uncapped = extract(grid, SheetKind.PERIOD, VOCAB, season=2023).rows
    assert sum(1 for row in uncapped if row.team_code == "DDG") == 30


def test_draft_sheet_reads_price_team_and_keeper() -> None:
    grid = [
        ["", "Dodger Dawgs", "", "", "Skunk Dogs", "", ""],
        ["C", "J. Posada", 25, "NYY", "I. Rodriguez", "$30", "TEX"],
        ["SP", "P. Martinez", "n/a", "", "R. Clemens", 41, "hou"],
    ]
    bold = [
        [False] * 7,
        [False, True, False, False, False, False, False],
        [False] * 7,
    ]
    rows = extract(grid, SheetKind.DRAFT, VOCAB, season=2004, bold=bold).rows
    by_name = {row.player_name_raw: row for row in rows}

    assert by_name["J. Posada"].draft_dollars == 25
    assert by_name["J. Posada"].mlb_team == "NYY"
    assert by_name["J. Posada"].is_keeper is True
    assert by_name["I. Rodriguez"].draft_dollars == 30
    assert by_name["I. Rodriguez"].mlb_team == "TEX"
    assert by_name["P. Martinez"].draft_dollars == 0
    assert by_name["P. Martinez"].mlb_team is None
    assert by_name["R. Clemens"].mlb_team == "HOU"
    assert by_name["R. Clemens"].is_pitcher_guess is True


def test_vertical_blocks_unroll_side_by_side() -> None:
    grid = [
        ["Player", "Team", "Pos", "HR", "W", "", "Player", "Team", "Pos", "HR", "W"],
        ["A. Pujols", "Dodger Dawgs", "1B", 40, 0, "", "R. Johnson", "Skunk Dogs", "SP", 0, 17],
        ["B. Bonds", "DDG", "OF", 45, 0, "", "", "", "", "", ""],
    ]
    result = extract(grid, SheetKind.PERIOD, VOCAB, season=2004)

    assert result.layout == "vertical"
    by_name = {row.player_name_raw: row for row in result.rows}
    assert set(by_name) == {"A. Pujols", "B. Bonds", "R. Johnson"}
    assert by_name["A. Pujols"].team_code == "DDG"
    assert by_name["A. Pujols"].stats["HR"] == 40
    assert by_name["R. Johnson"].team_code == "SKD"
    assert by_name["R. Johnson"].is_pitcher_guess is True
    assert by_name["B. Bonds"].team_code == "DDG"
    assert len(result.records) == 3


def test_unrecognized_sheet_passes_through_as_opaque() -> None:
    grid = [["notes", "about"], [None, None], ["the", "trade deadline"]]
    result = extract(grid, SheetKind.PERIOD, VOCAB)

    assert result.layout == "opaque"
    assert result.rows == []
    assert result.records == [
        {"col_0": "notes", "col_1": "about"},
        {"col_0": "the", "col_1": "trade deadline"},
    ]


def test_standings_tables_unroll() -> None:
    grid = [
        ["Final Standings"],
        ["Rank", "Team", "Total", "", "Rank", "Team", "Total"],
        [1, "Dodger Dawgs", 88.5, "", 3, "Foul Tip", 61],
        [2, "Skunk Dogs", 70, "", "", "", ""],
    ]
    result = extract(grid, SheetKind.STANDINGS, VOCAB)

    assert result.layout == "vertical"
    assert [record["Team"] for record in result.records] == ["Dodger Dawgs", "Foul Tip", "Skunk Dogs"]
    assert result.records[1]["Total"] == 61


def test_parse_dollars_handles_symbols_and_garbage() -> None:
    assert parse_dollars("$1,200") == 1200
    assert parse_dollars(12.0) == 12
    assert parse_dollars("-5") == 0
    assert parse_dollars(None) == 0
    assert parse_dollars("inf") == 0
    assert parse_dollars("1e400") == 0


def test_names_on_section_label_row_are_kept() -> None:
    grid = [
        ["", "Dodger Dawgs", "Skunk Dogs"],
        ["C", "J. Posada", "I. Rodriguez"],
        ["Pitchers", "R. Johnson", "G. Maddux"],
        ["", "Pitching", "T. Glavine"],
    ]
    rows = extract(grid, SheetKind.PERIOD, VOCAB, season=2004).rows

    assert [(row.player_name_raw, row.is_pitcher_guess) for row in rows] == [
        ("J. Posada", False),
        ("I. Rodriguez", False),
        ("R. Johnson", True),
        ("G. Maddux", True),
        ("T. Glavine", True),
    ]


def test_vertical_section_label_switches_to_pitchers() -> None:
    grid = [
        ["Player", "Team", "Pos", "HR", "W"],
        ["A. Pujols", "DDG", "", 40, 0],
        ["Pitchers", "", "", "", ""],
        ["R. Johnson", "SKD", "", 0, 0],
    ]
    rows = extract(grid, SheetKind.PERIOD, VOCAB, season=2004).rows

    assert [(row.player_name_raw, row.is_pitcher_guess) for row in rows] == [
        ("A. Pujols", False),
        ("R. Johnson", True),
    ]


def test_blank_stat_cell_is_skipped_not_fatal() -> None:
    grid = [["Player", "Team", "HR", "SB"], ["A. Pujols", "DDG", float("nan"), 3]]
    result = extract(grid, SheetKind.PERIOD, VOCAB, season=2024)

    assert result.layout == "vertical"
    (row,) = result.rows
    assert row.stats == {"SB": 3.0}
