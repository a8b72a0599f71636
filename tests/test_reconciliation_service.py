"""Tests for identifier reconciliation and Web_ID write-back."""
import pytest
from dataclasses import replace
from unittest.mock import Mock

from eskimo_sync.models import Category, Product
from eskimo_sync.services.error_handler import ErrorCollector
from eskimo_sync.services.reconciliation_service import (
    IdentifierMapping, ReconciliationService, web_id_for
)


@pytest.fixture
def reconciliation(db_session, settings, mock_api):
    return ReconciliationService(db_session, settings, api=mock_api, sleep=Mock())


class TestPartitionCategories:
    """Test selection of categories to import."""

    def test_parents_before_children(self, reconciliation, make_category):
        """Test that a child listed before its parent is still imported after it."""
        child = make_category('11|product', parent_id='10|product', short='Polos')
        parent = make_category('10|product', short='Shirts')

        partition = reconciliation.partition_categories([child, parent])

        assert partition.ordered == [parent, child]

    def test_skips_non_product_and_reconciled(self, reconciliation, make_category):
        errors = ErrorCollector('categories')
        categories = [
            make_category('10|product'),
            make_category('20|department'),
            make_category('30|product', web_id='12'),
            make_category('40|product', web_id='0'),
        ]

        partition = reconciliation.partition_categories(categories, errors)

        assert [c.eskimo_category_id for c in partition.ordered] == ['10|product', '40|product']
        assert partition.skipped == 2
        assert len(errors) == 1
        assert errors.records[0].message == 'Web_ID exists [12]'


class TestSelectProducts:
    """Test product eligibility rules."""

    def test_eligible_product_selected(self, reconciliation, make_product, make_sku):
        product = make_product(skus=[make_sku('POLO-M')])
        assert reconciliation.select_products([product], ErrorCollector('p')) == [product]

    @pytest.mark.parametrize("overrides,reason", [
        ({'category': '10|department'}, 'Not a product category [10|department]'),
        ({'title': ''}, 'Title not set'),
        ({'web_category_id': ''}, 'Category not imported [10|product]'),
        ({'web_id': '44'}, 'Web_ID exists [44]'),
        ({'skus': []}, 'Product SKU not set'),
    ])
    def test_skip_reasons(self, reconciliation, make_product, make_sku, overrides, reason):
        """Test that each ineligible product is skipped with its reason."""
        kwargs = {'skus': [make_sku('POLO-M')]}
        kwargs.update(overrides)
        errors = ErrorCollector('p')

        assert reconciliation.select_products([make_product(**kwargs)], errors) == []
        assert errors.records[0].message == reason

    def test_require_imported(self, reconciliation, make_product, make_sku):
        """Test that targeted updates only accept products already carrying a Web_ID."""
        imported = make_product(identifier='1|A|', web_id='9', skus=[make_sku('A-M')])
        fresh = make_product(identifier='2|B|', skus=[make_sku('B-M')])
        errors = ErrorCollector('p')

        selected = reconciliation.select_products([imported, fresh], errors, require_imported=True)

        assert selected == [imported]
        assert errors.records[0].message == 'Web_ID not set'


class TestMappings:
    """Test mapping projection, reset and write-back."""

    def test_web_id_prefix(self):
        assert web_id_for(12) == '12'
        assert web_id_for(12, 'shop-') == 'shop-12'

    def test_project_mappings_from_local_rows(self, reconciliation, db_session):
        category = Category(name='Shirts', slug='shirts', eskimo_category_id='10|product')
        unmapped = Category(name='Local', slug='local')
        db_session.add_all([category, unmapped])
        db_session.flush()
        product = Product(name='Polo', sku='POLO', eskimo_product_id='1|STY|', category=category)
        db_session.add(product)
        db_session.flush()

        assert reconciliation.project_category_mappings() == [
            IdentifierMapping.category('10|product', str(category.id))
        ]
        assert [m.to_payload() for m in reconciliation.project_product_mappings()] == [
            {'Eskimo_Identifier': '1|STY|', 'Web_ID': str(product.id)}
        ]

    def test_project_uses_prefix(self, db_session, settings, mock_api):
        service = ReconciliationService(db_session, replace(settings, category_prefix='c'), api=mock_api)
        category = Category(name='Shirts', slug='shirts', eskimo_category_id='10|product')
        db_session.add(category)
        db_session.flush()

        assert service.project_category_mappings()[0].web_id == f'c{category.id}'

    def test_reset_mappings(self, reconciliation, make_category, make_product):
        categories = [
            make_category('10|product', web_id='5'),
            make_category('11|product'),
            make_category('12|department', web_id='7'),
        ]
        products = [
            make_product(identifier='1|A|', web_id='9'),
            make_product(identifier='2|B|'),
            make_product(identifier='3|C|', web_id='4', web_category_id=''),
        ]

        assert [m.to_payload() for m in reconciliation.reset_category_mappings(categories)] == [
            {'Eskimo_Category_ID': '10|product', 'Web_ID': '0'}
        ]
        assert [m.to_payload() for m in reconciliation.reset_product_mappings(products)] == [
            {'Eskimo_Identifier': '1|A|', 'Web_ID': '0'}
        ]

    def test_push_uses_matching_endpoint(self, reconciliation, mock_api):
        result = reconciliation.push_categories([IdentifierMapping.category('10|product', '5')])

        assert result.ok
        mock_api.categories_update_cart_ids.assert_called_once_with(
            [{'Eskimo_Category_ID': '10|product', 'Web_ID': '5'}]
        )
        mock_api.products_update_cart_ids.assert_not_called()

    def test_push_nothing(self, reconciliation, mock_api):
        assert reconciliation.push_products([]).batches == 0
        mock_api.products_update_cart_ids.assert_not_called()
