import codecs


class LineFramer:
    """
    Split an incoming stream into newline-delimited lines.

    Partial data is carried between feeds; lines are stripped and empty
    lines dropped. There is no length cap on the pending fragment.
    """

    def __init__(self, encoding="utf-8"):
        self.encoding = encoding
        self._carry = ""
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def reset(self):
        self._carry = ""
        self._decoder.reset()

    @property
    def pending(self) -> str:
        return self._carry

    def feed(self, chunk):
        """Append a chunk (bytes or str) and return the complete lines it finished."""
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._decoder.decode(bytes(chunk))
        if not chunk:
            return []

        self._carry += chunk
        out = []
        while True:
            idx = self._carry.find("\n")
            if idx < 0:
                break
            line = self._carry[:idx].strip()
            self._carry = self._carry[idx + 1:]
            if line:
                out.append(line)
        return out


def iter_lines(chunks, framer=None):
    """Lazily yield lines from an iterable of chunks."""
    framer = framer or LineFramer()
    for chunk in chunks:
        yield from framer.feed(chunk)
