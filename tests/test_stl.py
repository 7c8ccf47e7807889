import tempfile
import unittest
import numpy as np
from pathlib import Path
from stlkit.errors import TooSmallError, MalformedAsciiError, MalformedBinaryError, InvalidGeometryError
from stlkit.geometry.buffer import GeometryBuffer
from stlkit.stl import StlFile, load_stl, save_stl, parse_stl

PYRAMID_VERTICES = [
    0, 1, 0,    -1, 0, 1,    1, 0, 1,
    0, 1, 0,    1, 0, 1,     1, 0, -1,
    0, 1, 0,    1, 0, -1,    -1, 0, -1,
    0, 1, 0,    -1, 0, -1,   -1, 0, 1,
]

class StlFileTestCase(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def make_pyramid(self) -> StlFile:
        stl = StlFile(GeometryBuffer.from_triangles(PYRAMID_VERTICES, normals=np.zeros(12), header='Pyramid'))
        stl.compute_normals()
        return stl


class TestRoundTrips(StlFileTestCase):
    def test_pyramid_binary(self):
        """Test that the pyramid written as binary reads back with 4 triangles and exact vertices."""
        self.make_pyramid().write_binary(self.root / 'pyramid_bin.stl')
        self.assertEqual((self.root / 'pyramid_bin.stl').stat().st_size, 84 + 4 * 50)

        stl = StlFile()
        stl.read(self.root / 'pyramid_bin.stl')
        self.assertEqual(stl.geometry.triangle_count, 4)
        self.assertEqual(len(stl.geometry.vertices), 36)
        self.assertEqual(len(stl.geometry.normals), 12)
        self.assertEqual(stl.geometry.vertices.tolist(), PYRAMID_VERTICES)
        self.assertEqual(stl.geometry.header, b'Pyramid'.ljust(80, b'\0'))

    def test_pyramid_ascii(self):
        """Test that the pyramid written as ASCII reads back with identical vertices and normals."""
        pyramid = self.make_pyramid()
        pyramid.write_ascii(self.root / 'pyramid_ascii.stl')
        self.assertTrue((self.root / 'pyramid_ascii.stl').read_text().startswith('solid pyramid_ascii\n'))

        stl = StlFile()
        stl.read(self.root / 'pyramid_ascii.stl')
        self.assertEqual(stl.geometry.triangle_count, 4)
        self.assertEqual(stl.geometry.vertices.tolist(), PYRAMID_VERTICES)
        self.assertEqual(stl.geometry.normals.tobytes(), pyramid.geometry.normals.tobytes())

    def test_ascii_name(self):
        """Test that an explicit solid name is used on the solid and endsolid lines."""
        self.make_pyramid().write_ascii(self.root / 'out.stl', name='Pauls Pyramid')
        lines = (self.root / 'out.stl').read_text().splitlines()
        self.assertEqual(lines[0], 'solid Pauls Pyramid')
        self.assertEqual(lines[-1], 'endsolid Pauls Pyramid')

    def test_empty_binary(self):
        """Test that an empty buffer writes an 84-byte file that reads back empty."""
        StlFile().write_binary(self.root / 'empty.stl')
        self.assertEqual((self.root / 'empty.stl').read_bytes(), bytes(84))

        geometry = load_stl(self.root / 'empty.stl')
        self.assertEqual(geometry.triangle_count, 0)
        self.assertEqual(len(geometry.vertices), 0)
        self.assertEqual(len(geometry.normals), 0)

    def test_binary_with_solid_header(self):
        """Test that a binary file whose header starts with 'solid ' is parsed as binary."""
        geometry = GeometryBuffer.from_triangles(PYRAMID_VERTICES, header='solid pyramid')
        save_stl(self.root / 'solid_header.stl', geometry)
        self.assertTrue((self.root / 'solid_header.stl').read_bytes().startswith(b'solid '))
        self.assertEqual(load_stl(self.root / 'solid_header.stl').vertices.tolist(), PYRAMID_VERTICES)

    def test_read_replaces_contents(self):
        """Test that each read discards the previous contents instead of appending."""
        self.make_pyramid().write_binary(self.root / 'pyramid.stl')
        StlFile().write_binary(self.root / 'empty.stl')

        stl = StlFile()
        stl.read(self.root / 'pyramid.stl')
        stl.read(self.root / 'pyramid.stl')
        self.assertEqual(stl.geometry.triangle_count, 4)
        stl.read(self.root / 'empty.stl')
        self.assertEqual(stl.geometry.triangle_count, 0)
        self.assertEqual(stl.geometry.header, bytes(80))

    def test_parse_in_memory(self):
        """Test that in-memory bytes are detected and parsed like files."""
        geometry = parse_stl(b"solid\nendsolid\n")
        self.assertEqual(geometry.triangle_count, 0)

    def test_ascii_after_long_leading_whitespace(self):
        """Test that an ASCII file padded with more whitespace than the sniffing window is still read as ASCII."""
        facet = b"facet normal 0 0 1\nouter loop\nvertex 0 0 0\nvertex 1 0 0\nvertex 0 1 0\nendloop\nendfacet\n"
        (self.root / 'padded.stl').write_bytes(b" " * 1030 + b"solid x\n" + facet + b"endsolid x\n")
        geometry = load_stl(self.root / 'padded.stl')
        self.assertEqual(geometry.triangle_count, 1)
        self.assertEqual(geometry.normals.tolist(), [0, 0, 1])


class TestReadErrors(StlFileTestCase):
    def test_missing_file(self):
        """Test that a missing path raises FileNotFoundError carrying the path."""
        with self.assertRaises(FileNotFoundError) as context:
            StlFile().read(self.root / 'missing.stl')
        self.assertEqual(str(context.exception.filename), str(self.root / 'missing.stl'))

    def test_structural_errors(self):
        """Test that each kind of malformed file raises its own error type."""
        test_cases = {
            'tiny.stl': (b'sol', TooSmallError),
            'bad_ascii.stl': (b"solid bad\nfacet normal 0 0 1\nouter loop\nvertex 0 0 0\nendloop\n", MalformedAsciiError),
            'truncated.stl': (bytes(80) + (3).to_bytes(4, 'little') + bytes(120), MalformedBinaryError)}

        for filename, (data, error) in test_cases.items():
            with self.subTest(file=filename):
                (self.root / filename).write_bytes(data)
                with self.assertRaises(error):
                    load_stl(self.root / filename)

    def test_failed_read_keeps_previous_contents(self):
        """Test that a failed parse leaves the buffer exactly as it was."""
        self.make_pyramid().write_binary(self.root / 'pyramid.stl')
        (self.root / 'bad.stl').write_bytes(b"solid bad\nfacet normal 0 0 1\n  outer loop\n    vertex 0 0 0\n    vertex 1 0\n")

        stl = StlFile()
        stl.read(self.root / 'pyramid.stl')
        with self.assertRaises(MalformedAsciiError):
            stl.read(self.root / 'bad.stl')
        self.assertEqual(stl.geometry.triangle_count, 4)
        self.assertEqual(stl.geometry.vertices.tolist(), PYRAMID_VERTICES)


class TestWriteErrors(StlFileTestCase):
    def test_invalid_geometry(self):
        """Test that both writers refuse 30 vertex values."""
        stl = StlFile(GeometryBuffer(vertices=np.zeros(30, dtype=np.float32), triangle_count=3))
        for write in [stl.write_binary, stl.write_ascii]:
            with self.subTest(writer=write.__name__):
                with self.assertRaises(InvalidGeometryError):
                    write(self.root / 'bad.stl')
                self.assertFalse((self.root / 'bad.stl').exists())

    def test_invalid_geometry_keeps_existing_file(self):
        """Test that a rejected write does not truncate a file already at the destination."""
        self.make_pyramid().write_binary(self.root / 'pyramid.stl')
        before = (self.root / 'pyramid.stl').read_bytes()

        stl = StlFile(GeometryBuffer(vertices=np.zeros(18, dtype=np.float32), triangle_count=1))
        with self.assertRaises(InvalidGeometryError):
            stl.write_binary(self.root / 'pyramid.stl')
        self.assertEqual((self.root / 'pyramid.stl').read_bytes(), before)

    def test_unwritable_destination(self):
        """Test that open failures surface as OSError."""
        with self.assertRaises(OSError):
            self.make_pyramid().write_binary(self.root / 'no_such_dir' / 'pyramid.stl')


if __name__ == '__main__':
    unittest.main()
