import cli_driver


def scripted(*answers):
    answers = iter(answers)
    return lambda prompt: next(answers)


def test_quit_immediately(capsys):
    session = cli_driver.main(["--seed", "1"], input_fn=scripted("q"))
    out = capsys.readouterr().out
    assert "Quitting game." in out
    assert "Final Board State" in out
    assert session.move_count == 0


def test_plays_moves_and_new_game(capsys):
    session = cli_driver.main(
        ["--seed", "3", "--size", "4", "--win-tile", "32"],
        input_fn=scripted("x", "w", "a", "s", "d", "n", "q"),
    )
    out = capsys.readouterr().out
    assert "Invalid input. Use W, A, S, D." in out
    assert session.score == 0
    assert session.move_count == 0
    assert session.settings.win_tile == 32


def test_best_score_file(tmp_path, capsys):
    path = tmp_path / "best.json"
    path.write_text('{"2048-best-score": 1234}')
    cli_driver.main(["--seed", "1", "--best-score-file", str(path)], input_fn=scripted("q"))
    assert "Best: 1234" in capsys.readouterr().out
