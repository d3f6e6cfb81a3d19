"""
lean_browser: a stateful web browser for language models.

The model searches the web, opens links and finds text in pages through
`lean_browser.tools.simple_browser.SimpleBrowserTool`. Pages are shown as
line-numbered windows with inline citation markers (`⟦0†Link text⟧`) that the
model can open or cite.
"""
