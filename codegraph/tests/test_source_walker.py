from codegraph.extractors import ImportExtractor
from codegraph.scanner.source_walker import SourceWalker


class TestSourceWalker:
    """Test tree walking and parallel file loading."""

    def setup_method(self):
        self.broken = "packages/trpc/src/broken.ts"

    def test_walk_skips_ignored_dirs(self, temp_repo):
        walker = SourceWalker(str(temp_repo))
        paths = [f.path for f in walker.walk(extensions={".ts"})]

        assert "packages/trpc/src/user.ts" in paths
        assert not any(p.startswith("node_modules") for p in paths)

    def test_read_many_keeps_walk_order(self, temp_repo):
        walker = SourceWalker(str(temp_repo))
        files = list(walker.walk(temp_repo / "packages" / "trpc", extensions={".ts"}))
        assert self.broken in [f.path for f in files]

        loaded = walker.read_many(files, max_workers=2)

        assert [f.path for f in loaded] == [f.path for f in files if f.path != self.broken]
        assert all(f.content for f in loaded)

    def test_extractors_load_through_read_many(self, temp_repo, monkeypatch):
        extractor = ImportExtractor(root_path=str(temp_repo))
        batches = []
        read_many = extractor.walker.read_many

        def recording_read_many(source_files, max_workers=None):
            batches.append([f.path for f in source_files])
            return read_many(source_files, max_workers)

        monkeypatch.setattr(extractor.walker, "read_many", recording_read_many)
        result = extractor.extract()

        assert len(batches) == 1
        assert "packages/trpc/src/user.ts" in batches[0]
        assert self.broken in batches[0]
        assert any(n.get("file_path") == "packages/trpc/src/user.ts" for n in result.nodes)
