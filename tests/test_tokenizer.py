from order_scraper.invoice_parser import tokenize
from order_scraper.invoice_parser.tokenizer import parse_html


def test_tokenize_collapses_whitespace_and_drops_empty_nodes():
    html = """
    <html><body>
      <p>  Items
         Ordered </p>
      <p>   </p>
      <div><span>1 of:</span><span>  Brave New World</span></div>
    </body></html>
    """

    assert tokenize(html) == ["Items Ordered", "1 of: Brave New World"]


def test_tokenize_skips_script_style_and_noscript_subtrees():
    html = (
        "<div>Before</div>"
        "<script>var total = '$1.00';</script>"
        "<style>.a { color: red }</style>"
        "<noscript><p>Enable JavaScript</p></noscript>"
        "<div>After</div>"
    )

    assert tokenize(html) == ["Before", "After"]


def test_tokenize_skips_comments():
    assert tokenize("<div>A<!-- hidden --></div><div>B</div>") == ["A", "B"]


def test_label_ending_in_colon_absorbs_next_token():
    html = "<table><tr><td>Order Total:</td><td>$96.33</td></tr></table>"

    assert tokenize(html) == ["Order Total: $96.33"]


def test_leading_comma_is_appended_to_previous_token():
    html = "<div><b>Springfield</b>, IL 62701</div>"

    assert tokenize(html) == ["Springfield, IL 62701"]


def test_colon_merge_takes_precedence_over_comma_merge():
    html = "<span>Ship to:</span><span>, Springfield</span>"

    assert tokenize(html) == ["Ship to: , Springfield"]


def test_tokenize_is_depth_first_in_document_order():
    html = "<div>a<div>b<div>c</div>d</div>e</div><p>f</p>"

    assert tokenize(html) == ["a", "b", "c", "d", "e", "f"]


def test_tokenize_accepts_parsed_documents_and_subtrees():
    soup = parse_html("<div id='one'>One</div><div id='two'>Two <i>more</i></div>")

    assert tokenize(soup) == ["One", "Two", "more"]
    assert tokenize(soup.find(id="two")) == ["Two", "more"]


def test_tokenize_handles_deeply_nested_markup():
    html = "<div>" * 500 + "deep" + "</div>" * 500

    assert tokenize(html) == ["deep"]
