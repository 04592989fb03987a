from click.testing import CliRunner

from globebuilder.cli import cli

from conftest import SQUARE, polygon, write_region, box


def _countries(tmp_path):
    directory = tmp_path / 'countries'
    directory.mkdir()
    write_region(directory, 'Alpha', [polygon(SQUARE)])
    write_region(directory, 'Beta', [polygon(box(5, 5, 1))])
    return directory


def test_build_command(tmp_path):
    directory = _countries(tmp_path)
    output = tmp_path / 'world.glb'
    runner = CliRunner()
    result = runner.invoke(cli, [
        'build', str(directory), '-o', str(output),
        '--colors', str(tmp_path / 'no-colors.json'),
        '--tolerance', '0', '--seed', '1', '--workers', '2',
    ])
    assert result.exit_code == 0, result.output
    assert output.exists()
    assert 'Regions: 2 processed, 0 failed' in result.output


def test_build_ignores_undecodable_colors(tmp_path):
    directory = _countries(tmp_path)
    colors = tmp_path / 'colors.json'
    colors.write_bytes(b'{"\xff\xfe": [1, 0, 0]}')
    output = tmp_path / 'world.glb'
    result = CliRunner().invoke(cli, ['build', str(directory), '-o', str(output),
                                      '--colors', str(colors), '--tolerance', '0'])
    assert result.exit_code == 0, result.output
    assert output.exists()


def test_build_missing_directory(tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli, ['build', str(tmp_path / 'missing'),
                                 '-o', str(tmp_path / 'world.glb')])
    assert result.exit_code == 1
    assert 'not found' in result.output


def test_build_nothing_to_write(tmp_path):
    directory = tmp_path / 'countries'
    directory.mkdir()
    runner = CliRunner()
    result = runner.invoke(cli, ['build', str(directory), '-o', str(tmp_path / 'world.glb')])
    assert result.exit_code == 1
    assert not (tmp_path / 'world.glb').exists()


def test_inspect_command(tmp_path):
    directory = _countries(tmp_path)
    output = tmp_path / 'world.glb'
    runner = CliRunner()
    runner.invoke(cli, ['build', str(directory), '-o', str(output), '--tolerance', '0'])

    result = runner.invoke(cli, ['inspect', str(output)])
    assert result.exit_code == 0, result.output
    assert 'Alpha_0' in result.output
    assert '2 nodes' in result.output
